"""Installation options.

Options are declared once, with a kind and an optional default, then filled
in by a chain of readers:

    options = default_options().populate([
        CLIOptionsReader.from_click_context(ctx),
        DefaultOptionsReader(),
    ])

A reader only touches options it has a value for. Options already set by the
user (flags, prompts) are never overwritten by later default computation.
Deployment units see their own options through `for_deployment(id)`, a view
over the names prefixed with `<id>.`.
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Collection, Iterable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

import click
from click.core import ParameterSource

from ..errors import ValidationError

# The one global option units can read through their scoped view
SYSTEM_DOMAIN = "system_domain"
SECRET_MASK = "********"

_TRUE_STRINGS = {"true", "yes", "y", "1", "on"}
_FALSE_STRINGS = {"false", "no", "n", "0", "off"}


class OptionType(Enum):
    """Declared kind of an option value."""

    BOOLEAN = "bool"
    STRING = "string"
    INTEGER = "int"


@dataclass
class InstallationOption:
    """A named, typed installation setting."""

    name: str
    type: OptionType
    description: str = ""
    default: Any = None
    # Computes a default from the option itself; takes precedence over `default`
    default_func: Callable[[InstallationOption], Any] | None = None
    value: Any = None
    user_set: bool = False

    def __post_init__(self) -> None:
        self.value = self.zero() if self.value is None else self.convert(self.value)
        if self.default is not None:
            self.default = self.convert(self.default)

    def zero(self) -> Any:
        if self.type == OptionType.BOOLEAN:
            return False
        if self.type == OptionType.INTEGER:
            return 0
        return ""

    @property
    def secret(self) -> bool:
        """Passwords are never echoed or printed."""
        return self.type == OptionType.STRING and "password" in self.name

    @property
    def is_zero(self) -> bool:
        return self.value == self.zero()

    @property
    def flag_name(self) -> str:
        """Command line flag, e.g. `gitea.admin_password` -> `--gitea-admin-password`."""
        return "--" + self.name.replace(".", "-").replace("_", "-")

    @property
    def param_name(self) -> str:
        """Python identifier click uses for the flag's value."""
        return self.name.replace(".", "_").replace("-", "_")

    def convert(self, value: Any) -> Any:
        """Coerce a raw value to the declared kind.

        Strings from flags and prompts are parsed; anything else must already
        have the right kind.

        Raises:
            ValidationError: The value cannot represent the declared kind.
        """
        if self.type == OptionType.BOOLEAN:
            if isinstance(value, bool):
                return value
            if isinstance(value, str) and value.strip().lower() in _TRUE_STRINGS:
                return True
            if isinstance(value, str) and value.strip().lower() in _FALSE_STRINGS:
                return False
        elif self.type == OptionType.INTEGER:
            # bool is an int subclass, reject it explicitly
            if isinstance(value, int) and not isinstance(value, bool):
                return value
            if isinstance(value, str):
                try:
                    return int(value.strip())
                except ValueError:
                    pass
        elif isinstance(value, str):
            return value

        raise ValidationError(
            message=f"Invalid value {value!r} for option '{self.name}': expected {self.type.value}",
            data={"option": self.name, "value": value},
        )

    def set(self, value: Any) -> None:
        self.value = self.convert(value)

    def computed_default(self) -> Any:
        """The value the default reader would assign, or None."""
        if self.default_func is not None:
            return self.default_func(self)
        return self.default


class InstallationOptions:
    """Ordered set of installation options with unique names."""

    def __init__(self, options: Iterable[InstallationOption] = ()):
        self._options: dict[str, InstallationOption] = {}
        for option in options:
            if option.name in self._options:
                raise ValidationError(message=f"Duplicate option '{option.name}'")
            self._options[option.name] = option

    def __iter__(self) -> Iterator[InstallationOption]:
        return iter(self._options.values())

    def __len__(self) -> int:
        return len(self._options)

    def __contains__(self, name: object) -> bool:
        return name in self._options

    def get(self, name: str) -> InstallationOption:
        try:
            return self._options[name]
        except KeyError:
            raise ValidationError(message=f"Unknown option '{name}'") from None

    def value(self, name: str) -> Any:
        return self.get(name).value

    def set(self, name: str, value: Any) -> None:
        self.get(name).set(value)

    def as_dict(self, mask_secrets: bool = False) -> dict[str, Any]:
        return {
            option.name: SECRET_MASK if mask_secrets and option.secret and option.value else option.value
            for option in self
        }

    def populate(self, readers: Iterable[OptionsReader]) -> InstallationOptions:
        """Return a copy with each reader applied in turn.

        A reader error aborts immediately; self is left untouched.
        """
        populated = copy.deepcopy(self)
        for reader in readers:
            for option in populated:
                reader.read(option)
        return populated

    def for_deployment(self, deployment_id: str) -> ScopedOptions:
        return ScopedOptions(self, deployment_id)


class ScopedOptions:
    """View of the options belonging to one deployment unit.

    Entries are shared with the parent set: writes through the view are
    visible in the parent. The view cannot add options.
    """

    def __init__(self, parent: InstallationOptions, deployment_id: str):
        self._parent = parent
        self.deployment_id = deployment_id
        self.prefix = f"{deployment_id}."

    def _full_name(self, name: str) -> str:
        return name if name.startswith(self.prefix) else self.prefix + name

    def __iter__(self) -> Iterator[InstallationOption]:
        return (option for option in self._parent if option.name.startswith(self.prefix))

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self._full_name(name) in self._parent

    def get(self, name: str) -> InstallationOption:
        full_name = self._full_name(name)
        if full_name not in self._parent:
            raise ValidationError(
                message=f"Unknown option '{name}' for deployment '{self.deployment_id}'"
            )
        return self._parent.get(full_name)

    def value(self, name: str) -> Any:
        return self.get(name).value

    def set(self, name: str, value: Any) -> None:
        self.get(name).set(value)

    @property
    def system_domain(self) -> str:
        if SYSTEM_DOMAIN not in self._parent:
            return ""
        return self._parent.value(SYSTEM_DOMAIN)


class OptionsReader(Protocol):
    """A source of option values."""

    def read(self, option: InstallationOption) -> None:
        """Fill in option if this source has a value for it."""


class CLIOptionsReader:
    """Take values for options explicitly passed on the command line."""

    def __init__(self, values: Mapping[str, Any], explicit: Collection[str] | None = None):
        """Initialize reader.

        Args:
            values: Parameter values keyed by InstallationOption.param_name.
            explicit: Parameter names the user actually passed. When None,
                every non-None value counts as passed.
        """
        self.values = values
        self.explicit = explicit

    @classmethod
    def from_click_context(cls, ctx: click.Context) -> CLIOptionsReader:
        explicit = {
            name
            for name in ctx.params
            if ctx.get_parameter_source(name)
            in (ParameterSource.COMMANDLINE, ParameterSource.ENVIRONMENT)
        }
        return cls(ctx.params, explicit)

    def read(self, option: InstallationOption) -> None:
        key = option.param_name
        if self.values.get(key) is None:
            return
        if self.explicit is not None and key not in self.explicit:
            return
        option.set(self.values[key])
        option.user_set = True


class InteractiveOptionsReader:
    """Ask the user for every option not already given on the command line."""

    def __init__(
        self,
        prompt: Callable[..., Any] = click.prompt,
        confirm: Callable[..., bool] = click.confirm,
    ):
        self.prompt = prompt
        self.confirm = confirm

    def read(self, option: InstallationOption) -> None:
        if option.user_set:
            return

        suggested = option.computed_default()
        text = option.description or option.name

        if option.type == OptionType.BOOLEAN:
            answer = self.confirm(text, default=bool(suggested))
        elif option.type == OptionType.INTEGER:
            answer = self.prompt(text, default=suggested if suggested is not None else 0, type=int)
        elif option.secret:
            answer = self.prompt(
                text,
                default=suggested if suggested is not None else "",
                hide_input=True,
                show_default=False,
            )
        else:
            answer = self.prompt(text, default=suggested if suggested is not None else "")

        option.set(answer)
        option.user_set = True


class DefaultOptionsReader:
    """Fill options the user left alone with their (computed) default."""

    def read(self, option: InstallationOption) -> None:
        if option.user_set:
            return
        value = option.computed_default()
        if value is not None:
            option.set(value)
