"""
Wire-level text of the Internet Knock-Knock Protocol.

    Server → client   BANNER
    Client → server   "Who's there?"
    Server → client   OSCAR_PROMPT            or WRONG_WHOS_THERE (close)
    Client → server   "Oscar who?"
    Server → client   PUNCHLINE               or WRONG_OSCAR_WHO  (close)

The server's own lines end in "\\r\\n". WRONG_WHOS_THERE has no line
ending at all; clients have always received it that way.
"""

PROTOCOL_NAME = "Internet Knock-Knock Protocol Server"
PROTOCOL_VERSION = "1.0"

BANNER = f"{PROTOCOL_NAME}\r\nVersion {PROTOCOL_VERSION}\r\nKnock! Knock!\r\n> "
OSCAR_PROMPT = "Oscar\r\n> "
PUNCHLINE = "Oscar silly question, you get a silly answer\r\n"
WRONG_WHOS_THERE = "You should say 'Who's there?'!"
WRONG_OSCAR_WHO = "You should say 'Oscar who?'!\r\n"

WHOS_THERE = "Who's there?"
OSCAR_WHO = "Oscar who?"

# Only this many leading characters are compared; anything after is ignored
WHOS_THERE_PREFIX_LEN = 12
OSCAR_WHO_PREFIX_LEN = 10


def prefix_matches(line: str, expected: str, length: int) -> bool:
    """
    Compare the first `length` characters of `line` with `expected`,
    ignoring ASCII letter case.

    A line shorter than `length` never matches. Trailing content after the
    prefix (extra words, "\\r") is ignored:

        prefix_matches("WHO'S THERE? hi", WHOS_THERE, 12)  → True
        prefix_matches("who", WHOS_THERE, 12)              → False
    """
    return _ascii_lower(line[:length]) == _ascii_lower(expected[:length])


_ASCII_LOWER = str.maketrans(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ", "abcdefghijklmnopqrstuvwxyz"
)


def _ascii_lower(text: str) -> str:
    # str.lower() would also fold non-ASCII letters
    return text.translate(_ASCII_LOWER)
