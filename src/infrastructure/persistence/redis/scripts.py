"""
Lua scripts for atomic job transitions in Redis.

Key layout (prefix = REDIS_KEY_PREFIX):
    {prefix}:job:{id}                 HASH   job record (scalar fields, JSON blobs as strings)
    {prefix}:seq                      STRING enqueue sequence (INCR)
    {prefix}:queues                   SET    queue names seen by enqueue
    {prefix}:queue:{q}:ready          ZSET   score = priority * PRIORITY_FACTOR + seq
    {prefix}:queue:{q}:delayed        ZSET   score = next_visible_at (ms)
    {prefix}:queue:{q}:active         ZSET   score = lease expiry (ms)
    {prefix}:queue:{q}:completed      ZSET   score = finished_at (ms)
    {prefix}:queue:{q}:failed         ZSET   score = finished_at (ms)

Payload, result, backoff and error are stored as opaque JSON strings; the
scripts never decode them, so values round-trip byte for byte.

Job hash keys are derived inside the scripts from the prefix, which ties the
broker to a single Redis node (no cluster slot routing).
"""

from typing import Final

# Seq values stay below this, so lower priority numbers always sort first
PRIORITY_FACTOR: Final[int] = 10**12

# Shared Lua helpers prepended to scripts that move jobs into `ready`
_READY_SCORE = """
local function ready_score(key)
  local pri = tonumber(redis.call('HGET', key, 'priority')) or 0
  local seq = tonumber(redis.call('HGET', key, 'seq')) or 0
  return pri * tonumber(ARGV[#ARGV]) + seq
end
"""

_HOLDS_LEASE = """
local function holds_lease(key, token, now)
  local fields = redis.call('HMGET', key, 'state', 'lease_token', 'next_visible_at')
  return fields[1] == 'active' and fields[2] == token and (tonumber(fields[3]) or 0) > now
end
"""

# KEYS: ready, delayed, active, failed
# ARGV: prefix, now, visibility_ms, lease_token, cancelled_error_json, PRIORITY_FACTOR
RESERVE: Final[str] = _READY_SCORE + """
local ready, delayed, active, failed = KEYS[1], KEYS[2], KEYS[3], KEYS[4]
local prefix = ARGV[1]
local now = tonumber(ARGV[2])
local visibility = tonumber(ARGV[3])
local token = ARGV[4]

for _, id in ipairs(redis.call('ZRANGEBYSCORE', delayed, '-inf', now)) do
  local key = prefix .. ':job:' .. id
  redis.call('ZREM', delayed, id)
  if redis.call('EXISTS', key) == 1 then
    redis.call('HSET', key, 'state', 'waiting')
    redis.call('ZADD', ready, ready_score(key), id)
  end
end

for _, id in ipairs(redis.call('ZRANGEBYSCORE', active, '-inf', now)) do
  local key = prefix .. ':job:' .. id
  redis.call('ZREM', active, id)
  if redis.call('EXISTS', key) == 1 then
    if redis.call('HGET', key, 'cancel_requested') == '1' then
      redis.call('HSET', key, 'state', 'failed', 'error', ARGV[5], 'result', '',
        'lease_token', '', 'cancel_requested', '0', 'finished_at', now)
      redis.call('ZADD', failed, now, id)
    else
      redis.call('HSET', key, 'state', 'waiting', 'lease_token', '', 'progress', 0)
      redis.call('ZADD', ready, ready_score(key), id)
    end
  end
end

while true do
  local head = redis.call('ZRANGE', ready, 0, 0)
  if #head == 0 then
    return false
  end
  local id = head[1]
  local key = prefix .. ':job:' .. id
  redis.call('ZREM', ready, id)

  if redis.call('EXISTS', key) == 1 then
    local reservations = tonumber(redis.call('HGET', key, 'reservations')) or 0
    local reservations_max = tonumber(redis.call('HGET', key, 'reservations_max')) or 0
    if reservations >= reservations_max then
      local err = '{"message": "Job exceeded ' .. reservations_max ..
        ' reservations without finalizing", "cause": "exhausted_attempts", "cause_class": null}'
      redis.call('HSET', key, 'state', 'failed', 'error', err, 'result', '',
        'lease_token', '', 'finished_at', now)
      redis.call('ZADD', failed, now, id)
    else
      redis.call('HSET', key, 'state', 'active', 'lease_token', token,
        'reservations', reservations + 1, 'next_visible_at', now + visibility,
        'progress', 0, 'started_at', now, 'cancel_requested', '0')
      redis.call('ZADD', active, now + visibility, id)
      return redis.call('HGETALL', key)
    end
  end
end
"""

# KEYS: job, active
# ARGV: lease_token, now, visibility_ms, id
HEARTBEAT: Final[str] = _HOLDS_LEASE + """
local now = tonumber(ARGV[2])
if not holds_lease(KEYS[1], ARGV[1], now) then
  return 0
end
local expiry = now + tonumber(ARGV[3])
redis.call('HSET', KEYS[1], 'next_visible_at', expiry)
redis.call('ZADD', KEYS[2], expiry, ARGV[4])
return 1
"""

# KEYS: job
# ARGV: lease_token, now, progress
PROGRESS: Final[str] = _HOLDS_LEASE + """
if not holds_lease(KEYS[1], ARGV[1], tonumber(ARGV[2])) then
  return 0
end
local current = tonumber(redis.call('HGET', KEYS[1], 'progress')) or 0
local value = math.min(tonumber(ARGV[3]), 100)
if value > current then
  redis.call('HSET', KEYS[1], 'progress', value)
end
return 1
"""

# KEYS: job, active, completed
# ARGV: lease_token, now, result_json, id
COMPLETE: Final[str] = _HOLDS_LEASE + """
local now = tonumber(ARGV[2])
if not holds_lease(KEYS[1], ARGV[1], now) then
  return 0
end
redis.call('HINCRBY', KEYS[1], 'attempts_made', 1)
redis.call('HSET', KEYS[1], 'state', 'completed', 'result', ARGV[3], 'error', '',
  'progress', 100, 'lease_token', '', 'cancel_requested', '0', 'finished_at', now)
redis.call('ZREM', KEYS[2], ARGV[4])
redis.call('ZADD', KEYS[3], now, ARGV[4])
return 1
"""

# KEYS: job, active, delayed, failed
# ARGV: lease_token, now, error_json, retry_at ('' = terminal), id, exhausted_error_json
FAIL: Final[str] = _HOLDS_LEASE + """
local now = tonumber(ARGV[2])
if not holds_lease(KEYS[1], ARGV[1], now) then
  return 0
end
local attempts = redis.call('HINCRBY', KEYS[1], 'attempts_made', 1)
local attempts_max = tonumber(redis.call('HGET', KEYS[1], 'attempts_max')) or 0
redis.call('ZREM', KEYS[2], ARGV[5])

if ARGV[4] ~= '' and attempts < attempts_max then
  redis.call('HSET', KEYS[1], 'state', 'delayed', 'next_visible_at', ARGV[4],
    'progress', 0, 'lease_token', '', 'last_error', ARGV[3])
  redis.call('ZADD', KEYS[3], tonumber(ARGV[4]), ARGV[5])
  return 1
end

local err = ARGV[3]
if ARGV[4] ~= '' then
  err = ARGV[6]
end
redis.call('HSET', KEYS[1], 'state', 'failed', 'error', err, 'result', '',
  'lease_token', '', 'cancel_requested', '0', 'finished_at', now)
redis.call('ZADD', KEYS[4], now, ARGV[5])
return 1
"""

# KEYS: job, active, ready
# ARGV: lease_token, now, id, PRIORITY_FACTOR
RELEASE: Final[str] = _READY_SCORE + _HOLDS_LEASE + """
local now = tonumber(ARGV[2])
if not holds_lease(KEYS[1], ARGV[1], now) then
  return 0
end
local reservations = tonumber(redis.call('HGET', KEYS[1], 'reservations')) or 0
redis.call('HSET', KEYS[1], 'state', 'waiting', 'lease_token', '', 'next_visible_at', now,
  'progress', 0, 'reservations', math.max(0, reservations - 1))
redis.call('ZREM', KEYS[2], ARGV[3])
redis.call('ZADD', KEYS[3], ready_score(KEYS[1]), ARGV[3])
return 1
"""

# KEYS: job, ready, delayed, active, failed
# ARGV: now, id, cancelled_error_json
# Returns: 'not_found' | 'completed' | 'failed' (already terminal) | 'active' | 'cancelled'
CANCEL: Final[str] = """
if redis.call('EXISTS', KEYS[1]) == 0 then
  return 'not_found'
end
local now = tonumber(ARGV[1])
local fields = redis.call('HMGET', KEYS[1], 'state', 'next_visible_at')
local state = fields[1]

if state == 'completed' or state == 'failed' then
  return state
end
if state == 'active' and (tonumber(fields[2]) or 0) > now then
  redis.call('HSET', KEYS[1], 'cancel_requested', '1')
  return 'active'
end

redis.call('ZREM', KEYS[2], ARGV[2])
redis.call('ZREM', KEYS[3], ARGV[2])
redis.call('ZREM', KEYS[4], ARGV[2])
redis.call('HSET', KEYS[1], 'state', 'failed', 'error', ARGV[3], 'result', '',
  'lease_token', '', 'cancel_requested', '0', 'finished_at', now)
redis.call('ZADD', KEYS[5], now, ARGV[2])
return 'cancelled'
"""

# KEYS: job, failed, ready, seq
# ARGV: now, id, PRIORITY_FACTOR
# Returns: 'not_found' | current state (not failed) | 'ok'
RETRY: Final[str] = _READY_SCORE + """
if redis.call('EXISTS', KEYS[1]) == 0 then
  return 'not_found'
end
local state = redis.call('HGET', KEYS[1], 'state')
if state ~= 'failed' then
  return state
end
local seq = redis.call('INCR', KEYS[4])
redis.call('HSET', KEYS[1], 'state', 'waiting', 'attempts_made', 0, 'reservations', 0,
  'progress', 0, 'next_visible_at', ARGV[1], 'seq', seq, 'error', '', 'last_error', '',
  'result', '', 'started_at', '', 'finished_at', '', 'cancel_requested', '0', 'lease_token', '')
redis.call('ZREM', KEYS[2], ARGV[2])
redis.call('ZADD', KEYS[3], ready_score(KEYS[1]), ARGV[2])
return 'ok'
"""

# KEYS: terminal zset (completed or failed)
# ARGV: prefix, cut-off (exclusive, ms)
PURGE: Final[str] = """
local ids = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', '(' .. ARGV[2])
for _, id in ipairs(ids) do
  redis.call('DEL', ARGV[1] .. ':job:' .. id)
end
redis.call('ZREMRANGEBYSCORE', KEYS[1], '-inf', '(' .. ARGV[2])
return #ids
"""

# KEYS: ready, delayed, active, completed, failed
# ARGV: prefix, now
# Returns: {waiting, active, completed, failed, delayed} as observed at `now`.
# Expired leases count as waiting, or as failed when cancel was requested,
# matching what the next RESERVE will do with them.
STATS: Final[str] = """
local now = ARGV[2]
local lapsed_waiting, lapsed_cancelled = 0, 0
for _, id in ipairs(redis.call('ZRANGEBYSCORE', KEYS[3], '-inf', now)) do
  if redis.call('HGET', ARGV[1] .. ':job:' .. id, 'cancel_requested') == '1' then
    lapsed_cancelled = lapsed_cancelled + 1
  else
    lapsed_waiting = lapsed_waiting + 1
  end
end
return {
  redis.call('ZCARD', KEYS[1]) + lapsed_waiting + redis.call('ZCOUNT', KEYS[2], '-inf', now),
  redis.call('ZCOUNT', KEYS[3], '(' .. now, '+inf'),
  redis.call('ZCARD', KEYS[4]),
  redis.call('ZCARD', KEYS[5]) + lapsed_cancelled,
  redis.call('ZCOUNT', KEYS[2], '(' .. now, '+inf'),
}
"""
