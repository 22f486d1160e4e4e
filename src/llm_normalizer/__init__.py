"""Provider-agnostic request building and response normalization for LLM APIs."""

import logging

logging.getLogger(__name__).addHandler(logging.NullHandler())
