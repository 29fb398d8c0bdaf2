"""Chat core: counselor directory, matcher, session state machine, escalation.

Import submodules explicitly:
    from app.services.chat.sessions import SessionService
"""
