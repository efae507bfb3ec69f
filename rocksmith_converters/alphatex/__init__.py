from .exporter import DEFAULT_INSTRUMENT, generate, export, split_span, tuning_string
