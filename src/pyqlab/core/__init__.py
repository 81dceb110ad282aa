"""Core business logic module.

Modules:
- math_normalizer: Canonical forms for numeric/symbolic answers
- answer_comparator: AI batch comparison of math answers
- paper_importer: Paper registration and PDF import
- pdf_extractor: Paper PDF text extraction
- question_extractor: AI question extraction and saving
- question_importer: Spreadsheet question import
- test_session: Test-taking state machine
- paper_grader: Grading of submitted tests
- results: Result presentation helpers
"""

__all__ = [
    "math_normalizer",
    "answer_comparator",
    "paper_importer",
    "pdf_extractor",
    "question_extractor",
    "question_importer",
    "test_session",
    "paper_grader",
    "results",
]
