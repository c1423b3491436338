"""Kuzu-backed persistence for Folio."""
