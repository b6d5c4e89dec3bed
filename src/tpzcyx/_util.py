import os
import re
import warnings

_SAFE_NAME = re.compile(r"[^A-Za-z0-9 ._-]")


def warn_if_risky_channel_name(name: str) -> str:
    """Warn if the given channel name is potentially risky.

    "risky" names include characters outside of the set [A-Za-z0-9 ._-], which may
    cause issues when channel names are used to build file names or labels.

    set TPZCYX_ALLOW_RISKY_CHANNEL_NAMES=1 to opt out of this warning.
    """
    if not name:
        raise ValueError("Channel names must not be empty")
    risky_chars = _SAFE_NAME.findall(name)
    if risky_chars and not os.getenv("TPZCYX_ALLOW_RISKY_CHANNEL_NAMES"):
        warnings.warn(
            f"The channel name {name!r} contains potentially risky characters: "
            f"{set(risky_chars)}.\nConsider using only alphanumeric characters, "
            "spaces, dots (.), underscores (_), or hyphens (-). "
            "Set TPZCYX_ALLOW_RISKY_CHANNEL_NAMES=1 to suppress this warning.",
            UserWarning,
            stacklevel=3,
        )
    return name
