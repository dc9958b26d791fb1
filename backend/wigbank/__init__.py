"""Wig bank donation workflow backend."""
