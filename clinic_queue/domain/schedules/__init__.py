"""
Schedules domain - practice sessions and the weekly ScheduleCatalog.

A slot is one doctor + session + day-of-week offering with a capacity ceiling.
Slots are soft-deleted so past reservations keep their reference.
"""
