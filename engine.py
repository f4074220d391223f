"""Exam composition constants: ratio presets, point defaults, durations. No I/O."""
# Ratio presets: parent slug -> {child slug: weight}
# SKD tryouts split TWK/TIU/TKP 30:35:45 when all three sections have stock.

RATIO_PRESETS = {
    "skd": {"twk": 30, "tiu": 35, "tkp": 45},
}

DEFAULT_MC_POINTS = 1  # stored answer keys without "score"
DEFAULT_CORRECT_SCORE = 5  # admin form default for new MC questions
TKP_MIN_SCORE = 1
TKP_MAX_SCORE = 5
MIN_CHOICES = 2
MAX_CHOICES = 10

SKD_DURATION_MINUTES = 100
INSTITUTION_DURATION_MINUTES = 60
DEFAULT_DURATION_MINUTES = 30
