"""Incremental embedding pipeline for live lecture transcripts.

This package finds which transcript segments still need embedding, splits
their text into overlapping chunks and stores the chunk embeddings in a
Supabase vector table.
"""
