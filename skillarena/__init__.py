"""
SkillArena Service - backend for the SkillArena tournament app

Responsibilities:
- Player identity (sign-up, login, profiles, username search)
- Friend requests and friend lists
- Tournament creation and roster registration
- Read projections consumed by the mobile client
- Presence and real-time events over redis
"""
