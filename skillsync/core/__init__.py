"""Core building blocks shared by the skills, sync and CLI layers."""
