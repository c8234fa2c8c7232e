import hashlib
import hmac
import logging
import os
import random
import secrets
import struct
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol, Sequence

from tabulate import tabulate

logger = logging.getLogger(__name__)

USAGE_EXAMPLE = "2,2,4,4,9,9 1,1,6,6,8,8 3,3,5,5,7,7"

# ==============================================================================
# 1. Configuration
# ==============================================================================

@dataclass(frozen=True)
class GameConfig:
    """
    Tunables for a game session.
    Fields:
        min_dice (int): Fewest dice accepted on the command line.
        key_bytes (int): Length of each commitment key.
        probability_precision (int): Decimals shown in the help table.
        log_level (str): Level passed to logging.basicConfig.
    """
    min_dice: int = 3
    key_bytes: int = 32
    probability_precision: int = 4
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, environ=None) -> "GameConfig":
        environ = os.environ if environ is None else environ
        kwargs = {}
        if environ.get("FAIR_DICE_LOG_LEVEL"):
            level = environ["FAIR_DICE_LOG_LEVEL"].upper()
            if not isinstance(logging.getLevelName(level), int):
                raise InvalidArgumentError(f"FAIR_DICE_LOG_LEVEL '{level}' is not a logging level.")
            kwargs["log_level"] = level
        if environ.get("FAIR_DICE_PRECISION"):
            try:
                kwargs["probability_precision"] = int(environ["FAIR_DICE_PRECISION"])
            except ValueError:
                raise InvalidArgumentError("FAIR_DICE_PRECISION must be an integer.")
            if kwargs["probability_precision"] < 0:
                raise InvalidArgumentError("FAIR_DICE_PRECISION must not be negative.")
        return cls(**kwargs)

# ==============================================================================
# 2. Error Handling Classes
# ==============================================================================

class ValidationError(Exception):
    """
    Raised when user-supplied input is rejected.
    Carries a human-readable message and, where useful, an example of correct usage.
    """
    _invocation_command = "python"

    @staticmethod
    def set_invocation_command(command: str):
        """Sets the command used to run the script (e.g., 'python' or 'py')."""
        ValidationError._invocation_command = command

    def __init__(self, message: str, example: Optional[str] = None):
        self.message = message
        self.example = example
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.example is None:
            return self.message
        return f"\nArgument Error: {self.message}\n\nExample usage:\n{self.example}\n"


class InvalidArgumentError(ValidationError, ValueError):
    """Malformed die specification or a non-positive range."""


class OutOfRangeError(ValidationError, ValueError):
    """Counterpart value outside [0, range_size)."""


class ProtocolStateError(RuntimeError):
    """A protocol step was taken out of order."""


def usage_example() -> str:
    script_name = os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else "fair_dice.py"
    return f"{ValidationError._invocation_command} {script_name} {USAGE_EXAMPLE}"

# ==============================================================================
# 3. Data Structure for a Die
# ==============================================================================

class Die:
    __slots__ = ("_faces",)

    def __init__(self, faces: Sequence[int]):
        faces = tuple(faces)
        if not faces:
            raise InvalidArgumentError("A die must have at least one face.")
        for face in faces:
            if isinstance(face, bool) or not isinstance(face, int):
                raise InvalidArgumentError(f"Face value {face!r} is not an integer.")
        self._faces = faces

    @property
    def faces(self) -> tuple:
        return self._faces

    def __str__(self) -> str:
        return ",".join(map(str, self._faces))

    def __repr__(self) -> str:
        return f"Die([{self}])"

    def __len__(self) -> int:
        return len(self._faces)

    def __getitem__(self, index: int) -> int:
        return self._faces[index]

    def __iter__(self):
        return iter(self._faces)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Die):
            return NotImplemented
        return self._faces == other._faces

    def __hash__(self) -> int:
        return hash(self._faces)

# ==============================================================================
# 4. Command-Line Argument Parser
# ==============================================================================

class DiceParser:
    @staticmethod
    def parse(args: list[str], min_dice: int = 3) -> list[Die]:
        if len(args) < min_dice:
            raise InvalidArgumentError(
                f"Please specify at least {min_dice} dice.", usage_example()
            )
        dice_list = []
        for arg in args:
            parts = [p.strip() for p in arg.split(",") if p.strip()]
            if not parts:
                raise InvalidArgumentError(f"Die '{arg}' has no faces.", usage_example())
            try:
                faces = [int(p) for p in parts]
            except ValueError:
                bad = next(p for p in parts if not _is_int(p))
                raise InvalidArgumentError(
                    f"Value '{bad}' in die '{arg}' is not an integer.", usage_example()
                )
            dice_list.append(Die(faces))
        if not all(len(d) == len(dice_list[0]) for d in dice_list):
            raise InvalidArgumentError(
                "All dice must have the same number of faces.", usage_example()
            )
        return dice_list


def _is_int(text: str) -> bool:
    try:
        int(text)
    except ValueError:
        return False
    return True


def parse_counterpart_value(text: str, range_size: int) -> int:
    """Validates the counterpart's contribution before it reaches the protocol."""
    try:
        value = int(text.strip())
    except ValueError:
        raise OutOfRangeError(f"'{text}' is not a number in 0..{range_size - 1}.")
    if not 0 <= value < range_size:
        raise OutOfRangeError(f"{value} is outside 0..{range_size - 1}.")
    return value

# ==============================================================================
# 5. Random Sources
# ==============================================================================

class RandomSource(Protocol):
    def next_int(self, exclusive_max: int) -> int: ...

    def random_bytes(self, length: int) -> bytes: ...


def _check_exclusive_max(exclusive_max: int):
    if isinstance(exclusive_max, bool) or not isinstance(exclusive_max, int):
        raise InvalidArgumentError(f"Range bound must be an integer, got {exclusive_max!r}.")
    if exclusive_max <= 0:
        raise InvalidArgumentError(f"Range bound must be positive, got {exclusive_max}.")


def _check_length(length: int):
    if length < 0:
        raise InvalidArgumentError(f"Byte length must not be negative, got {length}.")


class SecureRandomSource:
    """
    Uniform integers and key material from the operating system CSPRNG.

    next_int masks random bytes down to the smallest power of two covering the
    range and rejects draws that land outside it, so there is no modulo bias.
    """

    def next_int(self, exclusive_max: int) -> int:
        _check_exclusive_max(exclusive_max)
        mask = (1 << (exclusive_max - 1).bit_length()) - 1
        n_bytes = max(1, (mask.bit_length() + 7) // 8)
        while True:
            value = int.from_bytes(secrets.token_bytes(n_bytes), "little") & mask
            if value < exclusive_max:
                return value

    def random_bytes(self, length: int) -> bytes:
        _check_length(length)
        return secrets.token_bytes(length)


class SeededRandomSource:
    """Deterministic source with the same contract; for tests and replays only."""

    def __init__(self, seed: Optional[int] = None):
        self._seed = seed
        self._rng = random.Random(seed)

    @property
    def seed(self) -> Optional[int]:
        return self._seed

    def next_int(self, exclusive_max: int) -> int:
        _check_exclusive_max(exclusive_max)
        return self._rng.randrange(exclusive_max)

    def random_bytes(self, length: int) -> bytes:
        _check_length(length)
        return bytes(self._rng.getrandbits(8) for _ in range(length))

# ==============================================================================
# 6. Commitment Scheme
# ==============================================================================

class CommitmentScheme(Protocol):
    def commit(self, key: bytes, message: int) -> bytes: ...

    def verify(self, digest: bytes, key: bytes, message: int) -> bool: ...


class HmacCommitment:
    """
    Keyed-MAC commitment. The message is packed as a 4-byte little-endian signed
    integer, so only values in the int32 range can be committed.
    """
    _message_format = struct.Struct("<i")

    def __init__(self, digestmod=hashlib.sha3_256):
        self.digestmod = digestmod

    @property
    def digest_size(self) -> int:
        return hmac.new(b"", b"", self.digestmod).digest_size

    def encode_message(self, message: int) -> bytes:
        try:
            return self._message_format.pack(message)
        except struct.error:
            raise InvalidArgumentError(
                f"Message {message!r} does not fit in a signed 32-bit integer."
            )

    def commit(self, key: bytes, message: int) -> bytes:
        return hmac.new(key, self.encode_message(message), self.digestmod).digest()

    def verify(self, digest: bytes, key: bytes, message: int) -> bool:
        return hmac.compare_digest(self.commit(key, message), digest)


def to_hex(data: bytes) -> str:
    return data.hex().upper()

# ==============================================================================
# 7. Provably Fair Random Number Generation
# ==============================================================================

class ProtocolState(Enum):
    COMMITTED = "committed"
    AWAITING = "awaiting"
    REVEALED = "revealed"


@dataclass(frozen=True)
class ProtocolOutcome:
    range_size: int
    secret: int
    counterpart: int
    key: bytes
    digest: bytes
    result: int

    def verify(self, scheme: CommitmentScheme) -> bool:
        """Checks the published digest against the revealed key and secret."""
        return scheme.verify(self.digest, self.key, self.secret)


class FairRandomRound:
    """
    One commit/reveal exchange over 0..range_max.

    The secret and its digest are fixed on construction. publish() hands the
    digest out and only then does resolve() accept the counterpart's value,
    combine the two and reveal the key.
    """

    def __init__(self, range_max: int, source: RandomSource, scheme: CommitmentScheme,
                 key_bytes: int = 32):
        self.range_size = range_max + 1
        self._secret = source.next_int(self.range_size)
        self._key = source.random_bytes(key_bytes)
        self._digest = scheme.commit(self._key, self._secret)
        self._outcome: Optional[ProtocolOutcome] = None
        self.state = ProtocolState.COMMITTED
        logger.debug("Committed to a value in 0..%d", range_max)

    @property
    def outcome(self) -> Optional[ProtocolOutcome]:
        return self._outcome

    def _require(self, expected: ProtocolState, action: str):
        if self.state is not expected:
            raise ProtocolStateError(
                f"Cannot {action} in state {self.state.value}; expected {expected.value}."
            )

    def publish(self) -> bytes:
        self._require(ProtocolState.COMMITTED, "publish")
        self.state = ProtocolState.AWAITING
        logger.debug("Published digest %s", to_hex(self._digest))
        return self._digest

    def resolve(self, counterpart: int) -> ProtocolOutcome:
        self._require(ProtocolState.AWAITING, "resolve")
        result = (self._secret + counterpart) % self.range_size
        self._outcome = ProtocolOutcome(
            range_size=self.range_size,
            secret=self._secret,
            counterpart=counterpart,
            key=self._key,
            digest=self._digest,
            result=result,
        )
        self.state = ProtocolState.REVEALED
        logger.debug(
            "Revealed secret %d with key %s; (%d + %d) mod %d = %d",
            self._secret, to_hex(self._key), self._secret, counterpart,
            self.range_size, result,
        )
        return self._outcome


class FairRandomProtocol:
    def __init__(self, ui: "GameUI", source: Optional[RandomSource] = None,
                 scheme: Optional[CommitmentScheme] = None, key_bytes: int = 32):
        self.ui = ui
        self.source = source if source is not None else SecureRandomSource()
        self.scheme = scheme if scheme is not None else HmacCommitment()
        self.key_bytes = key_bytes

    def start(self, range_max: int) -> FairRandomRound:
        return FairRandomRound(range_max, self.source, self.scheme, self.key_bytes)

    def execute(self, range_max: int, prompt: str) -> int:
        round_ = self.start(range_max)
        digest = round_.publish()
        self.ui.display_commitment(range_max, to_hex(digest))

        counterpart = self.ui.read_number(prompt, round_.range_size)
        outcome = round_.resolve(counterpart)

        self.ui.display_reveal(outcome)
        return outcome.result

# ==============================================================================
# 8. Probability Calculation Logic
# ==============================================================================

class ProbabilityCalculator:
    @staticmethod
    def win_probability(die1: Die, die2: Die) -> float:
        wins = sum(1 for f1 in die1 for f2 in die2 if f1 > f2)
        return wins / (len(die1) * len(die2))

    @staticmethod
    def tie_probability(die1: Die, die2: Die) -> float:
        ties = sum(1 for f1 in die1 for f2 in die2 if f1 == f2)
        return ties / (len(die1) * len(die2))


class ProbabilityTable:
    """Pairwise win probabilities; row die against column die, None on the diagonal."""

    @staticmethod
    def build(dice: Sequence[Die]) -> list[list[Optional[float]]]:
        table = [
            [
                None if i == j else ProbabilityCalculator.win_probability(row_die, col_die)
                for j, col_die in enumerate(dice)
            ]
            for i, row_die in enumerate(dice)
        ]
        logger.debug("Built %dx%d probability table", len(dice), len(dice))
        return table

    @staticmethod
    def dominance(dice: Sequence[Die]) -> list[list[int]]:
        table = ProbabilityTable.build(dice)
        return [
            [j for j, prob in enumerate(row) if prob is not None and prob > 0.5]
            for row in table
        ]

# ==============================================================================
# 9. Help Table Generation
# ==============================================================================

class HelpTableGenerator:
    def __init__(self, precision: int = 4):
        self.precision = precision

    def format_cell(self, prob: Optional[float]) -> str:
        return "-" if prob is None else f"{prob:.{self.precision}f}"

    def generate_table(self, all_dice: Sequence[Die]) -> str:
        headers = ["User v PC >"] + [str(d) for d in all_dice]
        matrix = ProbabilityTable.build(all_dice)
        table_data = [
            [str(user_die)] + [self.format_cell(prob) for prob in row]
            for user_die, row in zip(all_dice, matrix)
        ]
        intro = (
            "\n--- Win Probability Table ---\n"
            "This table shows the probability of the User's die (rows) winning against the PC's die (columns).\n"
            "A die is never played against itself, so the diagonal is marked '-'.\n"
        )
        return intro + tabulate(table_data, headers=headers, tablefmt="grid")

# ==============================================================================
# 10. Console User Interface
# ==============================================================================

class GameUI:
    def __init__(self, input_func: Callable[[str], str] = input,
                 output_func: Callable[[str], None] = print):
        self._input = input_func
        self._output = output_func

    def display_message(self, text: str):
        self._output(text)

    def display_commitment(self, range_max: int, hmac_hex: str):
        self._output(f"I selected a random value in the range 0..{range_max} (HMAC={hmac_hex}).")

    def display_reveal(self, outcome: ProtocolOutcome):
        self._output(f"My number is {outcome.secret} (KEY={to_hex(outcome.key)}).")
        self._output(
            f"The fair number generation result is {outcome.secret} + {outcome.counterpart} "
            f"= {outcome.result} (mod {outcome.range_size})."
        )

    def ask(self, prompt: str) -> str:
        return self._input(prompt).strip()

    def _read(self, prompt: str) -> str:
        choice = self.ask(prompt)
        if choice.lower() == "x":
            self._output("Exiting game. Goodbye!")
            sys.exit(0)
        return choice

    def read_number(self, prompt: str, range_size: int) -> int:
        while True:
            self._output(f"\n{prompt}")
            for i in range(range_size):
                self._output(f" {i} - {i}")
            self._output("\n X - Exit")
            try:
                return parse_counterpart_value(self._read("Your selection: "), range_size)
            except OutOfRangeError as e:
                self._output(f"Invalid selection: {e.message}")

    def get_user_choice(self, prompt: str, options: list[str]) -> str:
        while True:
            self._output(f"\n{prompt}")
            for i, option in enumerate(options):
                self._output(f" {i} - {option}")

            self._output("\n X - Exit")
            self._output(" ? - Help")

            choice = self._read("Your selection: ")
            if choice == "?":
                return "?"

            if choice.isdecimal():
                choice_int = int(choice)
                if 0 <= choice_int < len(options):
                    return str(choice_int)

            self._output("Invalid choice. Please enter a valid number, '?', or 'X'.")

# ==============================================================================
# 11. Main Game Controller
# ==============================================================================

@dataclass(frozen=True)
class RoundResult:
    user_die: Die
    computer_die: Die
    user_roll: int
    computer_roll: int

    @property
    def winner(self) -> Optional[str]:
        if self.user_roll > self.computer_roll:
            return "user"
        if self.computer_roll > self.user_roll:
            return "computer"
        return None


class GameController:
    def __init__(self, dice: list[Die], ui: GameUI, protocol: FairRandomProtocol,
                 help_gen: HelpTableGenerator):
        self.all_dice = dice
        self.ui = ui
        self.protocol = protocol
        self.help_gen = help_gen

    def run(self):
        self.ui.display_message("--- Welcome to the Non-Transitive Dice Game! ---")
        while True:
            self.play_round()
            play_again = self.ui.ask("\nPlay another round? (y/n): ").lower()
            if play_again != "y":
                self.ui.display_message("Thanks for playing!")
                break

    def determine_first_player(self) -> bool:
        result = self.protocol.execute(1, "Let's determine who makes the first move. Add your number (0 or 1).")
        user_first = result == 0
        self.ui.display_message("You make the first move." if user_first else "I make the first move.")
        return user_first

    def play_round(self) -> RoundResult:
        user_goes_first = self.determine_first_player()
        user_die, computer_die = self._select_dice(user_goes_first)
        self.ui.display_message(f"\nYou chose [{user_die}]. I chose [{computer_die}].")

        self.ui.display_message("\nIt's time for my roll.")
        computer_roll = self._roll(computer_die)
        self.ui.display_message(f"My roll result is {computer_roll}.")

        self.ui.display_message("\nIt's time for your roll.")
        user_roll = self._roll(user_die)
        self.ui.display_message(f"Your roll result is {user_roll}.")

        result = RoundResult(user_die, computer_die, user_roll, computer_roll)
        if result.winner == "user":
            self.ui.display_message(f"You win! ({user_roll} > {computer_roll})")
        elif result.winner == "computer":
            self.ui.display_message(f"I win! ({computer_roll} > {user_roll})")
        else:
            self.ui.display_message("It's a draw!")
        return result

    def _roll(self, die: Die) -> int:
        index = self.protocol.execute(len(die) - 1, f"Add your number modulo {len(die)}.")
        return die[index]

    def _select_dice(self, user_goes_first: bool):
        available = list(range(len(self.all_dice)))
        if user_goes_first:
            user_idx = self._get_player_die_choice(available)
            available.remove(user_idx)
            computer_idx = available[self.protocol.source.next_int(len(available))]
        else:
            computer_idx = available[self.protocol.source.next_int(len(available))]
            available.remove(computer_idx)
            self.ui.display_message(f"I choose the [{self.all_dice[computer_idx]}] die.")
            user_idx = self._get_player_die_choice(available)
        return self.all_dice[user_idx], self.all_dice[computer_idx]

    def _get_player_die_choice(self, available: list[int]) -> int:
        while True:
            options = [str(self.all_dice[i]) for i in available]
            choice_str = self.ui.get_user_choice("Choose your die:", options)
            if choice_str == "?":
                self.ui.display_message(self.help_gen.generate_table(self.all_dice))
                continue
            return available[int(choice_str)]

# ==============================================================================
# 12. Main Execution Block
# ==============================================================================

def main(argv: Optional[list[str]] = None):
    try:
        config = GameConfig.from_env()
        logging.basicConfig(level=config.log_level, stream=sys.stderr)

        if "py.exe" in sys.executable.lower():
            ValidationError.set_invocation_command("py")
        else:
            ValidationError.set_invocation_command("python")

        args = sys.argv[1:] if argv is None else argv
        dice = DiceParser.parse(args, min_dice=config.min_dice)

        ui = GameUI()
        protocol = FairRandomProtocol(ui, key_bytes=config.key_bytes)
        help_gen = HelpTableGenerator(precision=config.probability_precision)

        controller = GameController(dice, ui, protocol, help_gen)
        controller.run()

    except ValidationError as e:
        print(e, file=sys.stderr)
        sys.exit(1)
    except (KeyboardInterrupt, EOFError):
        print("\nGame interrupted. Goodbye!")
        sys.exit(0)


if __name__ == "__main__":
    main()
