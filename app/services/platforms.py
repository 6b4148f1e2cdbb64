from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Platform:
    name: str
    display_name: str
    base_url: str
    domain: str
    max_results: int = 5


PLATFORMS: dict[str, Platform] = {
    "taskrabbit": Platform(
        name="taskrabbit",
        display_name="TaskRabbit",
        base_url="https://www.taskrabbit.com",
        domain="taskrabbit.com",
    ),
    "thumbtack": Platform(
        name="thumbtack",
        display_name="Thumbtack",
        base_url="https://www.thumbtack.com",
        domain="thumbtack.com",
    ),
}


def get_platform(name: str) -> Platform:
    key = name.strip().lower()
    if key not in PLATFORMS:
        raise ValueError(f"Unsupported platform: {name}")
    return PLATFORMS[key]


def resolve_platforms(names: list[str]) -> list[Platform]:
    """Map configured names to platforms, keeping order and dropping duplicates."""
    resolved: list[Platform] = []
    for name in names:
        platform = get_platform(name)
        if platform not in resolved:
            resolved.append(platform)
    return resolved
