# betbot/sse_events.py
"""
Presentation events.

The engine never patches an announcement in place: after each mutation it
publishes the full match view regenerated from stored state, and the client
(the chat bot) redraws its announcement and enables or disables the betting
buttons from that view.

Every connected stream gets its own bounded queue. With nobody listening an
event goes nowhere, and a subscriber that falls behind loses events instead of
holding them in memory.
"""

import queue
import json
import time
import threading
import logging

log = logging.getLogger(__name__)

MAX_PENDING_EVENTS = 100
KEEP_ALIVE_SECONDS = 15

_subscribers = []
_subscribers_lock = threading.Lock()

def subscribe():
    subscriber = queue.Queue(maxsize=MAX_PENDING_EVENTS)
    with _subscribers_lock:
        _subscribers.append(subscriber)
    return subscriber

def unsubscribe(subscriber):
    with _subscribers_lock:
        if subscriber in _subscribers:
            _subscribers.remove(subscriber)

def subscriber_count():
    with _subscribers_lock:
        return len(_subscribers)

def announce_event(event_type, data):
    log.info(f"Announcing SSE event: Type='{event_type}', Data='{str(data)[:100]}...'")
    event = {'type': event_type, 'data': data}
    with _subscribers_lock:
        targets = list(_subscribers)
    for subscriber in targets:
        try:
            subscriber.put_nowait(event)
        except queue.Full:
            log.warning(f"SSE subscriber queue full, dropping '{event_type}' event.")

def announce_match_state(match, reason):
    """
    Publishes the regenerated view of a match. `reason` names the mutation
    ('created', 'updated', 'started', 'settled', 'cancelled', 'bet_placed').
    """
    from betbot.services.lifecycle import can_accept_bets
    view = match.to_dict()
    announce_event('match_update', {
        'reason': reason,
        'betting_enabled': can_accept_bets(match),
        'match': view,
    })

def try_announce_match_state(match, reason):
    """
    Presentation problems never undo a ledger change: failures are logged and
    reported back as False.
    """
    try:
        announce_match_state(match, reason)
        return True
    except Exception as e:
        log.warning(f"Failed to announce '{reason}' for match {getattr(match, 'match_id', '?')}: {e}", exc_info=True)
        return False

def announce_points_update(user_id, new_points, reason, match_id=None):
    announce_event('points_update', {
        'user_id': user_id,
        'new_points': new_points,
        'reason': reason,
        'match_id': match_id,
    })

def sse_event_stream_generator(keep_alive_seconds=KEEP_ALIVE_SECONDS):
    client_id = str(time.time()) # Simple ID for this connection instance
    subscriber = subscribe()
    log.info(f"SSE Client [{client_id}] connected, starting event stream generator.")
    events_sent_this_connection = 0
    try:
        while True:
            try:
                event = subscriber.get(timeout=keep_alive_seconds)
                sse_formatted_event = f"event: {event['type']}\ndata: {json.dumps(event['data'])}\n\n"
                log.info(f"SSE Client [{client_id}]: Sending named event (total for session: {events_sent_this_connection + 1}): {event['type']}")
                yield sse_formatted_event
                events_sent_this_connection += 1
            except queue.Empty:
                yield ": keep-alive\n\n"
            except Exception as e_inner:
                log.error(f"SSE Client [{client_id}]: Error in inner loop: {e_inner}", exc_info=True)
                yield f"event: stream_error\ndata: {json.dumps({'error': 'Stream error'})}\n\n"
                time.sleep(1)

    except GeneratorExit: #raised when the client disconnects
        log.info(f"SSE Client [{client_id}] disconnected by client (GeneratorExit). Sent {events_sent_this_connection} events.")
    finally:
        unsubscribe(subscriber)
        log.info(f"SSE Client [{client_id}]: Generator exiting. Total events sent this session: {events_sent_this_connection}.")
