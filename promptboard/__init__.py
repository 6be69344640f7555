"""PromptBoard: local prompt templates with placeholders, import/export and backups."""
