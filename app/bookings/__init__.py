"""
Bookings app: listings, their fee configuration, and stays.

The settlement engine reads booking fields and writes only the lifecycle
transitions that settlement causes (COMPLETED, CANCELLED, DISPUTED and the
payout status).
"""
