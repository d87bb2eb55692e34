"""Database access layer (DAL) for the vote bot.

This sub-package keeps the play/vote/user storage behind a single gateway so
that the chat layer never touches SQL directly.
"""
