"""Bookings app package.

This app encapsulates the booking domain: reservations of seats in trek
batches, their payment and cancellation lifecycle, participant rosters,
cancellation/reschedule requests and the seat ledger that keeps every
batch within its capacity. Capacity admission happens under a row lock
on the batch inside the same transaction that writes the booking.
"""
