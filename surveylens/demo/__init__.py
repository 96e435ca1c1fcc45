"""Demo data for SurveyLens."""
