"""LLM rewriting of question and explanation text.

Provides the checkpointed, concurrency-bounded coordinator, the Mistral
backend client wrapper, prompt construction, and response parsing.
"""
