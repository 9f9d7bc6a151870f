"""Business logic services: LMS, webinars, CRM, messaging and notifications.

Modules are imported directly (``from academy.services import progress_service``)
so optional provider clients are only constructed when used.
"""
