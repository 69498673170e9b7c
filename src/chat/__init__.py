"""Token-budgeted, streaming chat over lecture transcripts.

Assembles bounded context from one lecture or a whole course, streams the
assistant's answer and persists both sides of each turn idempotently.
"""
