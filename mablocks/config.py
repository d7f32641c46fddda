"""Canvas core configuration."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Tunables of the layout engine and the media resource manager."""

    # Decoding
    FRAME_LIMIT: int = 500  # Frames kept per decoded source
    DEFAULT_FRAME_DURATION: float = 0.1  # Seconds, for frames without timing
    DECODE_WORKERS: int = 4

    # Texture memory
    TEXTURE_BUDGET_BYTES: int = 512 * 1024 * 1024  # Hard budget (512 MB)
    CLEANUP_RATIO: float = 0.8  # Eviction starts above this share of the budget

    # Playback
    MAX_PLAYING: int = 15  # Concurrently playing animations

    # Chains
    CHAIN_TIMEOUT: float = 10.0  # Idle time until a chain dissolves

    # Layout
    COLLISION_GAP: float = 2.0
    SOLVER_MAX_ITERATIONS: int = 64
    SOLVER_EPSILON: float = 0.01
    CANVAS_EXTENT: float = 1_000_000.0  # Half edge of the clamped canvas square
    MIN_BLOCK_SIZE: float = 50.0

    # Spawning
    TEXT_BLOCK_WIDTH: float = 200.0
    TEXT_BLOCK_HEIGHT: float = 100.0
    IMAGE_BLOCK_WIDTH: float = 300.0
    SPAWN_STEP: float = 50.0
    SPAWN_MAX_RINGS: int = 64

    # Input
    DRAG_THRESHOLD: float = 3.0  # Pointer travel below which a press is a click

    model_config = {"env_prefix": "MABLOCKS_"}

    @property
    def cleanup_threshold_bytes(self) -> int:
        """Committed texture bytes above which eviction runs."""
        return int(self.TEXTURE_BUDGET_BYTES * self.CLEANUP_RATIO)


settings = Settings()
