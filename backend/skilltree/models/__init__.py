"""
Pydantic models for API requests/responses and the static curriculum catalog.

- base.py: StrictRequest / StrictResponse bases
- curriculum.py: Catalog entries loaded from YAML
- learning.py: Lessons, hearts, reviews, streaks, skill tree snapshot
- gamification.py: Achievements, daily quests, rewards
"""
