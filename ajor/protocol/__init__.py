"""Cooperative contract wire protocol: message codec and response decoders."""
