ACCESS_CODE_PREFIX = "access_codes:"
ACCESS_CODE_KEY = ACCESS_CODE_PREFIX + "{code}"  # uppercase code - JSON blob
RATE_LIMIT_KEY = "rate_limit:{identity}"  # client identity (ip) - JSON counter with TTL

# **Example `access_codes:{code}` value**
# - `code` = uppercase code
# - `created` = epoch seconds
# - `used_count` / `max_uses` = integers, used_count <= max_uses
# - `expires_at` = epoch seconds or null (no expiry)

# **Example `rate_limit:{identity}` value**
# - `count` = attempts in the current window
# - `first_attempt` = epoch seconds the window started
# - TTL = 2x the window so idle counters disappear on their own
