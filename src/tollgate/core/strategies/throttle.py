from typing import Sequence

from tollgate.core.clock import TICKS_PER_SECOND
from tollgate.core.models import Algorithm, StorageKeys, ThrottleRequest
from tollgate.core.storage.base import AtomicScript, KeyValueView
from tollgate.core.strategies.base import RateLimitStrategy

_LUA_SCRIPT = """
local tonumber = tonumber
local currentTimeTicks = tonumber(ARGV[1])
local refillRate = tonumber(ARGV[2])
local capacity = tonumber(ARGV[3])
local tokens = capacity
local ticksStr = ARGV[1]
local result = 1

-- Fetch current state, a missing bucket starts full
local tokensStr = redis.call('GET', KEYS[1])
if tokensStr then
    tokens = tonumber(tokensStr)
end

local storedTicks = redis.call('GET', KEYS[2])
if storedTicks then
    ticksStr = storedTicks
end
local ticks = tonumber(ticksStr)

-- Refill on whole elapsed seconds only
local tokensToAdd = math.floor((currentTimeTicks - ticks) / 10000000) * refillRate
tokens = tokens + tokensToAdd

-- Only move the refill mark when tokens were added, so partial seconds carry over
if tokensToAdd > 0 then
    ticksStr = ARGV[1]
end

if tokens > capacity then
    tokens = capacity
end

-- Consume a token, no debt is carried
tokens = tokens - 1
if tokens < 0 then
    result = 0
    tokens = 0
end

-- By the time the keys expire the bucket would have refilled anyway
local ttl = (math.ceil(capacity / refillRate) + 1) * 1000
redis.call('SET', KEYS[1], tokens, 'PX', ttl)
redis.call('SET', KEYS[2], ticksStr, 'PX', ttl)

return result .. ',' .. string.format('%.17g', 10000000 / refillRate)
"""


def _transition(store: KeyValueView, keys: Sequence[str], argv: Sequence[str]) -> str:
    now = int(argv[0])
    refill_rate = int(argv[1])
    capacity = int(argv[2])
    tokens_key, ticks_key = keys

    stored_tokens = store.get(tokens_key)
    tokens = int(stored_tokens) if stored_tokens is not None else capacity

    ticks_str = store.get(ticks_key)
    if ticks_str is None:
        ticks_str = argv[0]
    ticks = int(ticks_str)

    tokens_to_add = (now - ticks) // TICKS_PER_SECOND * refill_rate
    tokens += tokens_to_add
    if tokens_to_add > 0:
        ticks_str = argv[0]

    tokens = min(tokens, capacity)

    tokens -= 1
    allowed = 1
    if tokens < 0:
        allowed = 0
        tokens = 0

    ttl_ms = (-(-capacity // refill_rate) + 1) * 1000
    store.set(tokens_key, str(tokens), ttl_ms)
    store.set(ticks_key, ticks_str, ttl_ms)

    return f"{allowed},{TICKS_PER_SECOND / refill_rate:.17g}"


THROTTLE_SCRIPT = AtomicScript(name="throttle", lua=_LUA_SCRIPT, transition=_transition)


class ThrottleStrategy(RateLimitStrategy):
    """
    Token Bucket implementation using Lua for atomicity.
    Tokens are refilled lazily, only when the key is accessed, and only for
    whole seconds elapsed since the last refill.
    """

    algorithm = Algorithm.THROTTLE
    script = THROTTLE_SCRIPT

    async def check(
        self,
        keys: StorageKeys,
        now_ticks: int,
        request: ThrottleRequest,
    ) -> str | bytes:
        return await self.evaluate(keys, now_ticks, request.refill_rate, request.capacity)
