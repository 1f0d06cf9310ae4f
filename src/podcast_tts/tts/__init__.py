"""
Synthesis Pipeline Components.

This package provides the building blocks of an episode:
    - chunker.py: Boundary cascade that keeps chunks under the byte limit
    - client.py: Google Cloud Text-to-Speech adapter and error mapping
    - synthesizer.py: Per-chunk truncation, shrink-retry and backoff
    - assembler.py: Ordered concatenation of chunk audio
    - voices.py: Voice profiles and the random voice selector
    - storage.py: Blob stores (local directory, GCS bucket)
    - documents.py: JSON documents with conditional writes
    - checkpoints.py: Per-chunk checkpoints for resumable episodes
    - concurrency.py: Per-key locks around episode production
"""
