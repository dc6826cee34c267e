"""Deterministic normalization of the raw question export.

Decodes and folds HTML markup to plain text, tags each question with a
region, maps category keys to stable slugs, and writes the canonical
corpus with run metadata.
"""
