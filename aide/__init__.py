"""Aide scheduling backend."""
