"""
Finalizer — post-pass over the assembled tree for values that can only
be known once every row has been ingested.

Volumes: each Episode asset built from a 1.8 sheet carries a staging
``volNum`` attribute.  For every ``VolumeMetadata`` the matching episodes
(same volume number, same parent season) are counted, their lowest
episode number becomes ``VolumeFirstEpisodeNumber``, and the staging
attributes are removed.  With no staging attributes left the pass has
nothing to do, so running it again is a no-op.
"""

import logging
from typing import Optional

from .nodes import OutputNode, new_node
from .strategies import VOLUME_MARKER

logger = logging.getLogger(__name__)


def _text(node: Optional[OutputNode]) -> Optional[str]:
    if node is None or not node.text:
        return None
    return node.text


def _episode_number(asset: OutputNode) -> Optional[int]:
    text = _text(asset.find("EpisodeMetadata/EpisodeNumber/Number"))
    if text is None:
        return None
    try:
        return int(text)
    except ValueError:
        return None


def finalize_volumes(root: OutputNode) -> int:
    """Fill in episode counts for every volume; returns volumes updated."""
    episodes = [a for a in root.iter("Asset") if a.get(VOLUME_MARKER)]
    if not episodes:
        return 0

    updated = 0
    for volume in root.iter("VolumeMetadata"):
        season_id = _text(volume.find("SeasonMetadata/SeasonContentID"))
        number = _text(volume.find("VolumeNumber/Number"))
        if season_id is None or number is None:
            continue

        members = [
            a for a in episodes
            if a.get(VOLUME_MARKER) == number
            and _text(a.find("EpisodeMetadata/SeasonMetadata/SeasonContentID"))
            == season_id
        ]
        if not members:
            continue
        for a in members:
            a.pop_attribute(VOLUME_MARKER)
        numbers = [n for n in (_episode_number(a) for a in members)
                   if n is not None]

        count = volume.child("VolumeNumberOfEpisodes")
        if count is None:
            count = new_node("avails:VolumeNumberOfEpisodes")
            volume.insert_after(count, volume.child("VolumeNumber"))
        count.text = str(len(members))

        if numbers:
            first = volume.child("VolumeFirstEpisodeNumber")
            if first is None:
                first = new_node("avails:VolumeFirstEpisodeNumber")
                volume.insert_before(first, count)
            first.text = str(min(numbers))
        updated += 1
        logger.debug(f"Volume {number} of season {season_id}: "
                     f"{len(members)} episodes")

    for a in episodes:
        a.pop_attribute(VOLUME_MARKER)
    return updated


def finalize(root: OutputNode, config) -> OutputNode:
    """Run every post-pass that applies to *config*'s template version."""
    if config.volumes:
        finalize_volumes(root)
    return root
