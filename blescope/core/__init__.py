"""Decoder, reconciler, naming, and service internals."""
