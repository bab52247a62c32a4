class BetaSchedule:
    """
    Importance-sampling exponent as a function of the training step.

    Subclasses implement ``__call__(step) -> float``. Any plain callable with
    the same signature can be used wherever a schedule is expected.
    """
    def __call__(self, step: int) -> float:
        raise NotImplementedError


class ConstantSchedule(BetaSchedule):
    """Same beta at every step."""
    def __init__(self, value: float = 0.5):
        self.value = value

    def __call__(self, step: int) -> float:
        return self.value

    def __repr__(self):
        return f"ConstantSchedule({self.value})"


class LinearSchedule(BetaSchedule):
    """
    Beta annealed linearly from beta_start to beta_end over beta_frames steps,
    then held at beta_end.
    """
    def __init__(self, beta_start: float = 0.2, beta_frames: int = 100000, beta_end: float = 1.0):
        if beta_frames <= 0:
            raise ValueError(f"beta_frames must be positive, got {beta_frames}")
        self.beta_start = beta_start
        self.beta_frames = beta_frames
        self.beta_end = beta_end

    def __call__(self, step: int) -> float:
        return min(self.beta_end, self.beta_start + (self.beta_end - self.beta_start) * step / self.beta_frames)

    def __repr__(self):
        return f"LinearSchedule({self.beta_start}, {self.beta_frames}, {self.beta_end})"
