"""Signing sessions on the client and anchoring endpoints on the relay."""
