"""Test suite configuration and marker guidance.

Use ``pytest -m smoke`` for rapid feedback on imports and runtime errors. Can be done in CI through github actions.
Use ``pytest -m unit`` for fast feedback on unit tests. Can be done in CI through github actions.
Use ``pytest -m e2e`` to run the slower end-to-end runs on synthetic fast5 files.
Use ``pytest`` to run everything.
"""
