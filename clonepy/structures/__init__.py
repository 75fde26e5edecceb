from clonepy.structures.events import Event, EventHandlers
from clonepy.structures.offset_array import OffsetArray
