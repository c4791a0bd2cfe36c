"""
Hig Clean Tec Entitlement Test Suite

Tests for:
- Subscription record persistence and the event log
- Lifecycle transitions and trial bookkeeping
- Tier gating and the upgrade prompt
- Churn/retention flow
- Onboarding messages and checklist
- Device limits and route protection
- HTTP API

Run tests with:
    pytest tests/ -v
"""
