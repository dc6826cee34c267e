"""Post-hoc validation that gates promotion of the corpus."""
