"""
Moderation module: append-only moderation log, user role/ban administration,
address bans.
"""
