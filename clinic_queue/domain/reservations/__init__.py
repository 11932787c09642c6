"""Reservations domain - ReservationLifecycle state machine and booking operations"""
