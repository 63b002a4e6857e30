"""Language-model provider interface, transport and stream decoding."""
