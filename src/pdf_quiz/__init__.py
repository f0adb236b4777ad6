"""Generate multiple-choice quizzes from uploaded PDF files."""
