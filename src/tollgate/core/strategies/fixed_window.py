from typing import Sequence

from tollgate.core.clock import seconds_to_ticks
from tollgate.core.models import Algorithm, FixedWindowRequest, StorageKeys
from tollgate.core.storage.base import AtomicScript, KeyValueView
from tollgate.core.strategies.base import RateLimitStrategy

TICKS_PER_MILLISECOND = 10_000

# LUA SCRIPT LOGIC:
# 1. Load count (default 0) and window start (default now)
# 2. Count this request
# 3. Inside the window: deny once count exceeds capacity
# 4. Window expired: start a new one with this request as its first
# 5. Write both values back, on both paths
#
# The window start is kept as the decimal string it arrived as. Lua numbers
# are doubles and rendering one back to a string would drop digits.
_LUA_SCRIPT = """
local tonumber = tonumber
local currentTimeTicks = tonumber(ARGV[1])
local windowSizeTicks = tonumber(ARGV[2])
local capacity = tonumber(ARGV[3])
local count = 0
local ticksStr = ARGV[1]
local result = 1

local countStr = redis.call('GET', KEYS[1])
if countStr then
    count = tonumber(countStr)
end

local storedTicks = redis.call('GET', KEYS[2])
if storedTicks then
    ticksStr = storedTicks
end
local ticks = tonumber(ticksStr)

count = count + 1

if (currentTimeTicks - ticks) < windowSizeTicks then
    if count > capacity then
        result = 0
    end
else
    count = 1
    ticksStr = ARGV[1]
    ticks = currentTimeTicks
end

-- Expiring with the window is the same as starting a new one
local ttl = math.ceil(windowSizeTicks / 10000)
redis.call('SET', KEYS[1], count, 'PX', ttl)
redis.call('SET', KEYS[2], ticksStr, 'PX', ttl)

return result .. ',' .. string.format('%d', math.abs(currentTimeTicks - ticks - windowSizeTicks))
"""


def _transition(store: KeyValueView, keys: Sequence[str], argv: Sequence[str]) -> str:
    now = int(argv[0])
    window_size = int(argv[1])
    capacity = int(argv[2])
    count_key, ticks_key = keys

    stored_count = store.get(count_key)
    count = int(stored_count) if stored_count is not None else 0

    ticks_str = store.get(ticks_key)
    if ticks_str is None:
        ticks_str = argv[0]
    ticks = int(ticks_str)

    count += 1
    allowed = 1

    if now - ticks < window_size:
        if count > capacity:
            allowed = 0
    else:
        count = 1
        ticks_str = argv[0]
        ticks = now

    ttl_ms = -(-window_size // TICKS_PER_MILLISECOND)
    store.set(count_key, str(count), ttl_ms)
    store.set(ticks_key, ticks_str, ttl_ms)

    return f"{allowed},{abs(now - ticks - window_size)}"


FIXED_WINDOW_SCRIPT = AtomicScript(name="fixed_window", lua=_LUA_SCRIPT, transition=_transition)


class FixedWindowStrategy(RateLimitStrategy):
    """
    Fixed Window Counter algorithm.

    Counts requests in a window that starts with the first request after
    the previous window expired. Cheap (two small keys per limited entity)
    but allows up to twice the capacity across a window boundary.
    """

    algorithm = Algorithm.FIXED_WINDOW
    script = FIXED_WINDOW_SCRIPT

    async def check(
        self,
        keys: StorageKeys,
        now_ticks: int,
        request: FixedWindowRequest,
    ) -> str | bytes:
        return await self.evaluate(
            keys,
            now_ticks,
            seconds_to_ticks(request.window_size),
            request.capacity,
        )
