from .song import (
    Beat,
    Section,
    Phrase,
    PhraseIteration,
    ChordTemplate,
    Note,
    Song,
    SongMetadata,
    Technique,
)
from .manifest import ArrangementManifest, SongGroup, Tuning, group_by_song
from .timing import TimingMap, NotationDocument
from .tempo import Tempo
