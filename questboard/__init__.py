"""Questboard: quarterly quests with image-verified task completion."""
