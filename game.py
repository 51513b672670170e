import sys
import hmac
import hashlib
import logging
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from tabulate import tabulate

logger = logging.getLogger(__name__)

EXAMPLE_DICE = "2,2,4,4,9,9 6,8,1,1,8,6 7,5,3,7,5,3"

# ==============================================================================
# 1. Error Classes
# ==============================================================================

class ConfigurationError(Exception):
    """
    Raised when the command-line dice configuration cannot be used.
    Its string form carries a corrected usage example.
    """
    _invocation_command = "python"

    @staticmethod
    def set_invocation_command(command: str):
        """Sets the command used to run the script (e.g., 'python' or 'py')."""
        ConfigurationError._invocation_command = command

    @staticmethod
    def usage_example() -> str:
        script_name = sys.argv[0] if sys.argv and sys.argv[0] else "game.py"
        return f"{ConfigurationError._invocation_command} {script_name} {EXAMPLE_DICE}"

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return (
            f"\nConfiguration Error: {self.message}\n\n"
            f"Example usage:\n{self.usage_example()}\n"
            "Each die is a comma-separated list of integers.\n"
        )


class SelectionError(Exception):
    """An unusable die number typed at the selection prompt."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)

# ==============================================================================
# 2. Configuration
# ==============================================================================

@dataclass(frozen=True)
class GameConfig:
    secret_space: int = 2
    min_dice: int = 3
    key_bytes: int = 32
    hash_name: str = "sha256"
    computer_die_index: int = 0
    quit_command: str = "x"
    help_command: str = "?"

    def __post_init__(self):
        if self.secret_space < 1:
            raise ValueError("secret_space must be at least 1.")
        if self.min_dice < 1:
            raise ValueError("min_dice must be at least 1.")
        # keys shorter than 256 bits are not accepted
        if self.key_bytes < 32:
            raise ValueError("key_bytes must be at least 32.")
        if self.hash_name not in hashlib.algorithms_available:
            raise ValueError(f"Unknown hash algorithm: {self.hash_name}")
        if self.computer_die_index < 0:
            raise ValueError("computer_die_index must not be negative.")

# ==============================================================================
# 3. Data Structure for a Die
# ==============================================================================

class Die:
    def __init__(self, faces):
        faces = tuple(faces)
        if not faces:
            raise ValueError("A die must have at least one face.")
        self._faces = faces

    @property
    def faces(self) -> tuple[int, ...]:
        return self._faces

    def roll(self, randbelow: Callable[[int], int] = secrets.randbelow) -> int:
        """Returns a uniformly chosen face. secrets.randbelow is unbiased over [0, n)."""
        return self._faces[randbelow(len(self._faces))]

    def __str__(self) -> str:
        return ",".join(map(str, self._faces))

    def __repr__(self) -> str:
        return f"Die([{self}])"

    def __len__(self) -> int:
        return len(self._faces)

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
    HELP_ARGUMENT = "help"

    @staticmethod
    def is_help_request(args: list[str]) -> bool:
        return len(args) == 1 and args[0].strip().lower() == DiceParser.HELP_ARGUMENT

    @staticmethod
    def parse(args: list[str], min_dice: int = 3) -> list[Die]:
        if len(args) < min_dice:
            raise ConfigurationError(
                f"Please specify at least {min_dice} dice (got {len(args)})."
            )
        dice = [DiceParser.parse_die(arg, position) for position, arg in enumerate(args)]
        logger.debug("Parsed %d dice: %s", len(dice), dice)
        return dice

    @staticmethod
    def parse_die(spec: str, position: int = 0) -> Die:
        if not spec.strip():
            raise ConfigurationError(f"Die #{position} is empty.")
        try:
            faces = [int(token.strip()) for token in spec.split(",")]
        except ValueError:
            raise ConfigurationError(
                f"Invalid die format '{spec}'. All dice faces must be integer values."
            ) from None
        return Die(faces)

    @staticmethod
    def parse_options(args: list[str]) -> tuple[GameConfig, bool, list[str]]:
        """
        Strips leading options off the argument list.
        Recognised: -v/--verbose and --secret-space=N.
        Returns the config, the verbose flag and the remaining die specifications.
        """
        verbose = False
        secret_space = GameConfig.secret_space
        remaining = list(args)
        while remaining and (remaining[0].startswith("--") or remaining[0] == "-v"):
            option = remaining.pop(0)
            if option in ("-v", "--verbose"):
                verbose = True
            elif option.startswith("--secret-space="):
                raw = option.split("=", 1)[1]
                try:
                    secret_space = int(raw)
                except ValueError:
                    raise ConfigurationError(f"Invalid secret space '{raw}'.") from None
                if secret_space < 1:
                    raise ConfigurationError("The secret space must be at least 1.")
            else:
                raise ConfigurationError(f"Unknown option '{option}'.")
        return GameConfig(secret_space=secret_space), verbose, remaining

# ==============================================================================
# 5. Cryptographic Operations and Commitments
# ==============================================================================

class CryptoProvider:
    def __init__(self, hash_name: str = "sha256", key_bytes: int = 32):
        self.hash_name = hash_name
        self.key_bytes = key_bytes

    def generate_key(self) -> bytes:
        return secrets.token_bytes(self.key_bytes)

    def generate_secure_random(self, max_val: int) -> int:
        return secrets.randbelow(max_val)

    def calculate_hmac(self, key: bytes, value: int) -> str:
        message = str(value).encode("utf-8")
        return hmac.new(key, message, self.hash_name).hexdigest().upper()

    def commit(self, secret_space: int) -> "Commitment":
        return Commitment.create(secret_space, self)


class Commitment:
    """
    A value hidden behind HMAC(key, value).

    Only the HMAC is meant to be shown before the counterpart answers;
    reveal() hands out the key and value afterwards so the HMAC can be
    recomputed by anyone.
    """

    def __init__(self, key: bytes, value: int, hmac_hex: str, crypto: CryptoProvider):
        self._key = key
        self._value = value
        self.hmac = hmac_hex
        self.crypto = crypto

    @classmethod
    def create(cls, secret_space: int, crypto: CryptoProvider) -> "Commitment":
        if secret_space < 1:
            raise ValueError("The secret space must contain at least one value.")
        value = crypto.generate_secure_random(secret_space)
        key = crypto.generate_key()
        commitment = cls(key, value, crypto.calculate_hmac(key, value), crypto)
        logger.debug("Committed to a value in 0..%d (HMAC=%s)", secret_space - 1, commitment.hmac)
        return commitment

    def reveal(self) -> tuple[bytes, int]:
        return self._key, self._value

    def verify(self, key: bytes, value: int) -> bool:
        return hmac.compare_digest(self.crypto.calculate_hmac(key, value), self.hmac)

# ==============================================================================
# 6. Probability Calculation and Table
# ==============================================================================

class ProbabilityCalculator:
    @staticmethod
    def calculate_win_probability(die1: Die, die2: Die) -> float:
        wins = sum(1 for f1 in die1.faces for f2 in die2.faces if f1 > f2)
        return wins / (len(die1) * len(die2))

    @staticmethod
    def compute_matrix(dice: list[Die]) -> list[list[Optional[float]]]:
        """Entry [i][j] is the chance die i beats die j; the diagonal is None."""
        matrix = []
        for i, row_die in enumerate(dice):
            row = []
            for j, column_die in enumerate(dice):
                if i == j:
                    row.append(None)
                else:
                    probability = ProbabilityCalculator.calculate_win_probability(row_die, column_die)
                    row.append(round(probability, 2))
            matrix.append(row)
        return matrix

    @staticmethod
    def render(dice: list[Die], matrix: Optional[list[list[Optional[float]]]] = None) -> str:
        if matrix is None:
            matrix = ProbabilityCalculator.compute_matrix(dice)
        labels = [f"D{i}" for i in range(len(dice))]
        headers = ["Row beats column"] + labels
        rows = [
            [label] + ["" if p is None else f"{p:.2f}" for p in row]
            for label, row in zip(labels, matrix)
        ]
        legend = "\n".join(f"{label} = [{die}]" for label, die in zip(labels, dice))
        intro = (
            "\n--- Win Probability Table ---\n"
            "Each cell is the probability that the row die rolls higher than the column die.\n"
        )
        table = tabulate(rows, headers=headers, tablefmt="grid", disable_numparse=True)
        return f"{intro}{table}\n{legend}\n"

# ==============================================================================
# 7. Console User Interface
# ==============================================================================

class GameUI:
    def __init__(self, config: Optional[GameConfig] = None):
        self.config = config or GameConfig()

    def display_message(self, text: str):
        print(text)

    def display_key_and_value(self, key: bytes, value: int):
        print(f"My number: {value} (KEY={key.hex().upper()})")

    def ask(self, prompt: str) -> str:
        return input(prompt).strip()

    @staticmethod
    def parse_selection(raw: str, count: int) -> int:
        try:
            index = int(raw)
        except ValueError:
            raise SelectionError(f"'{raw}' is not a die number") from None
        if not 0 <= index < count:
            raise SelectionError(f"there is no die {index}, pick 0..{count - 1}")
        return index

    def choose_die(self, dice: list[Die], on_help: Callable[[], None]) -> int:
        quit_command = self.config.quit_command.lower()
        help_command = self.config.help_command.lower()
        while True:
            print("\nChoose your die:")
            for i, die in enumerate(dice):
                print(f" {i} - [{die}]")
            print(f"\n {quit_command.upper()} - Exit")
            print(f" {help_command} - Help")

            choice = self.ask("Your choice: ").lower()

            if choice == quit_command:
                print("Exiting the game. Goodbye!")
                sys.exit(0)
            if choice == help_command:
                on_help()
                continue
            try:
                return self.parse_selection(choice, len(dice))
            except SelectionError as e:
                print(f"Invalid choice: {e}. Try again.")

# ==============================================================================
# 8. Provably Fair Turn Order
# ==============================================================================

class FairInteraction:
    def __init__(self, crypto: CryptoProvider, ui: GameUI, secret_space: int = 2):
        self.crypto = crypto
        self.ui = ui
        self.secret_space = secret_space

    @staticmethod
    def is_user_first(guess: str, value: int) -> bool:
        try:
            return int(guess) == value
        except (TypeError, ValueError):
            return False

    def determine_first_player(self) -> bool:
        top = self.secret_space - 1
        commitment = self.crypto.commit(self.secret_space)
        self.ui.display_message("\nLet's determine who makes the first move.")
        self.ui.display_message(f"I have chosen a random value in range 0..{top} (HMAC={commitment.hmac}).")

        guess = self.ui.ask(f"Try to guess my number (0..{top}): ")

        key, value = commitment.reveal()
        self.ui.display_key_and_value(key, value)
        self.ui.display_message(
            f"Check it yourself: HMAC-{self.crypto.hash_name.upper()}(KEY, \"{value}\") == {commitment.hmac}"
        )
        if self.is_user_first(guess, value):
            self.ui.display_message("You guessed correctly. You go first.")
            return True
        self.ui.display_message("You guessed incorrectly. The computer goes first.")
        return False

# ==============================================================================
# 9. Game Session and Controller
# ==============================================================================

class GamePhase(Enum):
    START = "start"
    SHOW_PROBABILITIES = "show_probabilities"
    DETERMINE_TURN_ORDER = "determine_turn_order"
    USER_PICKS_FIRST = "user_picks_first"
    COMPUTER_PICKS_FIRST = "computer_picks_first"
    BOTH_ROLLED = "both_rolled"
    REPORT_OUTCOME = "report_outcome"
    END = "end"


@dataclass
class GameSession:
    dice: list[Die]
    phase: GamePhase = GamePhase.START
    user_first: Optional[bool] = None
    user_die: Optional[Die] = None
    computer_die: Optional[Die] = None
    user_roll: Optional[int] = None
    computer_roll: Optional[int] = None

    def advance(self, phase: GamePhase):
        logger.debug("Game phase %s -> %s", self.phase.value, phase.value)
        self.phase = phase

    def outcome(self) -> str:
        if self.user_roll is None or self.computer_roll is None:
            raise RuntimeError("Both dice must be rolled before the outcome is known.")
        if self.user_roll > self.computer_roll:
            return "user"
        if self.computer_roll > self.user_roll:
            return "computer"
        return "draw"


class GameController:
    def __init__(self, dice: list[Die], ui: GameUI, interaction: FairInteraction,
                 config: Optional[GameConfig] = None):
        self.config = config or GameConfig()
        if self.config.computer_die_index >= len(dice):
            raise ConfigurationError(
                f"The computer plays die {self.config.computer_die_index}, "
                f"but only {len(dice)} dice were given."
            )
        self.ui = ui
        self.interaction = interaction
        self.session = GameSession(list(dice))
        self.probabilities = ProbabilityCalculator.compute_matrix(self.session.dice)

    def run(self) -> GameSession:
        session = self.session
        self.ui.display_message("--- Welcome to the Non-Transitive Dice Game! ---")

        session.advance(GamePhase.SHOW_PROBABILITIES)
        self._show_probabilities()

        session.advance(GamePhase.DETERMINE_TURN_ORDER)
        session.user_first = self.interaction.determine_first_player()

        if session.user_first:
            session.advance(GamePhase.USER_PICKS_FIRST)
            self._user_selects()
            self._computer_selects()
        else:
            session.advance(GamePhase.COMPUTER_PICKS_FIRST)
            self._computer_selects()
            self._user_selects()

        self._roll_both()
        self._report_outcome()
        session.advance(GamePhase.END)
        return session

    def _show_probabilities(self):
        self.ui.display_message(ProbabilityCalculator.render(self.session.dice, self.probabilities))

    def _user_selects(self):
        index = self.ui.choose_die(self.session.dice, on_help=self._show_probabilities)
        self.session.user_die = self.session.dice[index]
        self.ui.display_message(f"You chose the die [{self.session.user_die}].")

    def _computer_selects(self):
        # always the configured index, whatever the user took
        self.session.computer_die = self.session.dice[self.config.computer_die_index]
        self.ui.display_message(f"I choose the die [{self.session.computer_die}].")

    def _roll_both(self):
        session = self.session
        self.ui.display_message("\n--- Time to roll! ---")
        session.computer_roll = session.computer_die.roll()
        self.ui.display_message(f"My roll: {session.computer_roll}")
        session.user_roll = session.user_die.roll()
        self.ui.display_message(f"Your roll: {session.user_roll}")
        session.advance(GamePhase.BOTH_ROLLED)

    def _report_outcome(self):
        session = self.session
        session.advance(GamePhase.REPORT_OUTCOME)
        outcome = session.outcome()
        if outcome == "user":
            self.ui.display_message(f"You win ({session.user_roll} > {session.computer_roll})!")
        elif outcome == "computer":
            self.ui.display_message(f"The computer wins ({session.computer_roll} > {session.user_roll})!")
        else:
            self.ui.display_message(f"It's a draw ({session.user_roll} = {session.computer_roll})!")

# ==============================================================================
# 10. Main Execution Block
# ==============================================================================

def usage_text() -> str:
    example = ConfigurationError.usage_example()
    command = example[: -len(EXAMPLE_DICE)].rstrip()
    return (
        f"Usage: {command} [-v] [--secret-space=N] <die1> <die2> <die3> [<die4> ...]\n"
        f"Example: {example}\n"
        "Each die should be a comma-separated list of integers.\n"
        "At the die prompt, type the die number, '?' for the probability table or 'X' to exit."
    )


def main(argv: Optional[list[str]] = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)

    if "py.exe" in sys.executable.lower():
        ConfigurationError.set_invocation_command("py")
    else:
        ConfigurationError.set_invocation_command("python")

    if DiceParser.is_help_request(args):
        print(usage_text())
        return 0

    try:
        config, verbose, dice_args = DiceParser.parse_options(args)
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.WARNING,
            format="%(levelname)s %(name)s: %(message)s",
        )
        dice = DiceParser.parse(dice_args, config.min_dice)

        ui = GameUI(config)
        crypto = CryptoProvider(config.hash_name, config.key_bytes)
        interaction = FairInteraction(crypto, ui, config.secret_space)

        controller = GameController(dice, ui, interaction, config)
        controller.run()

    except ConfigurationError as e:
        print(e, file=sys.stderr)
        return 1
    except (KeyboardInterrupt, EOFError):
        print("\nGame interrupted. Goodbye!")
        return 0
    return 0


if __name__ == "__main__":
    sys.exit(main())
