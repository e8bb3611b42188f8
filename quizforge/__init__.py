"""QuizForge: AI-generated quizzes with timed sessions, history and a leaderboard."""

__version__ = "0.1.0"
