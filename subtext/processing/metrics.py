"""Quantitative conversation metrics computed directly from a Timeline.

These feed the pattern matcher as hard numbers so the reasoning service
does not have to count.
"""

from subtext.models import Timeline
from subtext.models.findings import LatencyProfile, PronounUsage, SenderStats
from subtext.processing.timeline import UNKNOWN_SENDER

# Replies slower than this are treated as a new conversation, not a reply
MAX_REPLY_MINUTES = 24 * 60

FIRST_PERSON_SINGULAR = frozenset({"i", "i'm", "i've", "i'll", "i'd", "me", "my", "mine", "myself"})
FIRST_PERSON_PLURAL = frozenset({"we", "we're", "we've", "we'll", "we'd", "us", "our", "ours", "ourselves"})

_WORD_PUNCTUATION = ".,!?;:\"()[]"


def latency_bucket(avg_minutes: float) -> str:
    if avg_minutes < 5:
        return "instant"
    if avg_minutes < 30:
        return "responsive"
    if avg_minutes < 120:
        return "moderate"
    return "slow"


def sender_stats(timeline: Timeline) -> dict[str, SenderStats]:
    totals: dict[str, list[int]] = {}
    for message in timeline.messages:
        entry = totals.setdefault(message.sender or UNKNOWN_SENDER, [0, 0])
        entry[0] += 1
        entry[1] += len(message.content)

    return {
        sender: SenderStats(count=count, total_chars=chars, avg_length=round(chars / count))
        for sender, (count, chars) in totals.items()
    }


def reply_latency(timeline: Timeline) -> dict[str, LatencyProfile]:
    """Average time each sender takes to answer the other party.

    Only adjacent timed pairs with a change of sender count, and only when
    the reply came within a day.
    """
    latencies: dict[str, list[float]] = {}
    for current, following in zip(timeline.messages, timeline.messages[1:]):
        if current.resolved_time is None or following.resolved_time is None:
            continue
        if not following.sender or following.sender == current.sender:
            continue
        minutes = (following.resolved_time - current.resolved_time).total_seconds() / 60
        if 0 < minutes < MAX_REPLY_MINUTES:
            latencies.setdefault(following.sender, []).append(minutes)

    profiles = {}
    for sender, values in latencies.items():
        average = sum(values) / len(values)
        profiles[sender] = LatencyProfile(avg_minutes=round(average, 1), pattern=latency_bucket(average))
    return profiles


def pronoun_usage(timeline: Timeline) -> dict[str, PronounUsage]:
    """Count "I" versus "we" language per sender."""
    counts: dict[str, list[int]] = {}
    for message in timeline.messages:
        entry = counts.setdefault(message.sender or UNKNOWN_SENDER, [0, 0])
        for raw_word in message.content.lower().split():
            word = raw_word.strip(_WORD_PUNCTUATION).replace("\u2019", "'")
            if word in FIRST_PERSON_SINGULAR:
                entry[0] += 1
            elif word in FIRST_PERSON_PLURAL:
                entry[1] += 1

    usage = {}
    for sender, (i_count, we_count) in counts.items():
        ratio = round(i_count / we_count, 1) if we_count else float(i_count)
        usage[sender] = PronounUsage(i_count=i_count, we_count=we_count, ratio=ratio)
    return usage
