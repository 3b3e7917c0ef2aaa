"""
SLA Engine Module
=================

Bounded Context for Service Level Agreement deadlines and escalation.

Responsibilities:
- Compute first-response, next-response and resolution due dates against
  business-hours calendars
- Track pause/resume periods so waiting time never counts against the SLA
- Report breach status and budget consumed per ticket
- Resolve the policy for a ticket's priority and reassign on priority change
- Escalate open tickets through threshold-based levels
- Hot-reload escalation thresholds via watchdog
"""

__version__ = "1.0.0"
