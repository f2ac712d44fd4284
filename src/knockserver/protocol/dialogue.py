"""
=============================================================================
KNOCK-KNOCK DIALOGUE
=============================================================================

The per-connection state machine. One instance per accepted client; it
never outlives the connection and shares nothing with the next one.

=============================================================================
STATES
=============================================================================

    ┌──────────┐  banner sent   ┌───────────────────┐  "Who's there?"  ┌──────────────────┐
    │ GREETED  │ ─────────────► │ EXPECT_WHOS_THERE │ ───────────────► │ EXPECT_OSCAR_WHO │
    └────┬─────┘                └─────────┬─────────┘  + Oscar prompt  └────────┬─────────┘
         │ send failed                    │ wrong answer                        │ any answer
         │                                │ or send failed                      │
         ▼                                ▼                                     ▼
    ┌──────────────────────────────────────────────────────────────────────────────────┐
    │                          DONE  (connection closed)                               │
    └──────────────────────────────────────────────────────────────────────────────────┘

Each step gets exactly one attempt. A wrong answer is corrected, never
re-prompted. A read that fails or hits end of stream yields an empty line,
which simply fails the match.

=============================================================================
"""

import logging
from enum import Enum
from typing import Optional

from ..core.connection import Connection
from . import messages


logger = logging.getLogger(__name__)


class DialogueState(Enum):
    """Which prompt the dialogue is waiting on."""
    GREETED = "greeted"
    EXPECT_WHOS_THERE = "expect_whos_there"
    EXPECT_OSCAR_WHO = "expect_oscar_who"
    DONE = "done"


class DialogueOutcome(Enum):
    """How a finished dialogue ended."""
    COMPLETED = "completed"                # Punchline delivered
    WRONG_WHOS_THERE = "wrong_whos_there"  # First answer rejected
    WRONG_OSCAR_WHO = "wrong_oscar_who"    # Second answer rejected
    ABANDONED = "abandoned"                # A reply could not be sent


class KnockKnockDialogue:
    """
    Drive one knock-knock exchange over a connection.

    Usage:
        dialogue = KnockKnockDialogue(conn)
        outcome = dialogue.run()    # connection is closed afterwards

    Attributes:
        state: Current DialogueState.
        outcome: DialogueOutcome once state is DONE, else None.
    """

    def __init__(self, conn: Connection):
        self.conn = conn
        self.state = DialogueState.GREETED
        self.outcome: Optional[DialogueOutcome] = None

        self._steps = {
            DialogueState.GREETED: self._greet,
            DialogueState.EXPECT_WHOS_THERE: self._expect_whos_there,
            DialogueState.EXPECT_OSCAR_WHO: self._expect_oscar_who,
        }

    def run(self) -> DialogueOutcome:
        """
        Run the dialogue to completion and close the connection.

        The connection is closed even if a step raises.
        """
        try:
            while self.state != DialogueState.DONE:
                self.state = self._steps[self.state]()
        finally:
            self.conn.close()

        logger.info(f"[{self.conn.id}] Dialogue finished: {self.outcome.value}")
        return self.outcome

    def _finish(self, outcome: DialogueOutcome) -> DialogueState:
        self.outcome = outcome
        return DialogueState.DONE

    # =========================================================================
    # STEPS: each returns the next state
    # =========================================================================

    def _greet(self) -> DialogueState:
        if self.conn.say(messages.BANNER) is None:
            return self._finish(DialogueOutcome.ABANDONED)
        return DialogueState.EXPECT_WHOS_THERE

    def _expect_whos_there(self) -> DialogueState:
        line = self._read_answer()

        if not messages.prefix_matches(
            line, messages.WHOS_THERE, messages.WHOS_THERE_PREFIX_LEN
        ):
            self.conn.say(messages.WRONG_WHOS_THERE)
            return self._finish(DialogueOutcome.WRONG_WHOS_THERE)

        if self.conn.say(messages.OSCAR_PROMPT) is None:
            return self._finish(DialogueOutcome.ABANDONED)
        return DialogueState.EXPECT_OSCAR_WHO

    def _expect_oscar_who(self) -> DialogueState:
        line = self._read_answer()

        if messages.prefix_matches(
            line, messages.OSCAR_WHO, messages.OSCAR_WHO_PREFIX_LEN
        ):
            self.conn.say(messages.PUNCHLINE)
            return self._finish(DialogueOutcome.COMPLETED)

        self.conn.say(messages.WRONG_OSCAR_WHO)
        return self._finish(DialogueOutcome.WRONG_OSCAR_WHO)

    def _read_answer(self) -> str:
        line = self.conn.read_line()
        if line is None:
            logger.debug(f"[{self.conn.id}] Read failed, treating as empty line")
            return ""
        logger.debug(f"[{self.conn.id}] {self.state.value}: {line!r}")
        return line
