"""SOS alert policy constants."""

from __future__ import annotations

# Radius in kilometers within which online peers receive the SOS
PEER_RADIUS_KM = 15.0

# Seconds to wait before an un-canceled SOS is escalated to the authority
ESCALATION_DELAY_SECONDS = 90.0

# Mean Earth radius used for haversine distances
EARTH_RADIUS_KM = 6371.0

# Upper bound accepted for ad-hoc nearby queries
MAX_QUERY_RADIUS_KM = 500.0

# SOS history paging
HISTORY_DEFAULT_LIMIT = 20
HISTORY_MAX_LIMIT = 100
