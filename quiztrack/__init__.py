"""Quiz progress tracking backend.

The package keeps per-user quiz progress in a local key/value store,
derives dashboard statistics from it and exposes both through a small
FastAPI application. `state` and `coordinator` hold the in-process quiz
flow used by a frontend; the remaining modules hold the concrete
implementations and their documentation.
"""
