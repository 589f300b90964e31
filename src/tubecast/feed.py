from __future__ import annotations

import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Iterable, Optional
from urllib.parse import quote

from .episodes import Episode

ITUNES_NS = "http://www.itunes.com/dtds/podcast-1.0.dtd"

ET.register_namespace("itunes", ITUNES_NS)


def render_feed(
    episodes: Iterable[Episode],
    *,
    base_url: str,
    title: str,
    description: str,
    now: Optional[datetime] = None,
) -> str:
    """RSS 2.0 document for the given episodes, newest first as given."""
    base_url = base_url.rstrip("/")
    rss = ET.Element("rss", {"version": "2.0"})
    channel = ET.SubElement(rss, "channel")
    ET.SubElement(channel, "title").text = title
    ET.SubElement(channel, "link").text = base_url
    ET.SubElement(channel, "description").text = description
    ET.SubElement(channel, "language").text = "en-us"
    ET.SubElement(channel, "lastBuildDate").text = format_datetime(now or datetime.now(timezone.utc))

    for ep in episodes:
        url = f"{base_url}/mp3s/{quote(ep.file)}"
        item = ET.SubElement(channel, "item")
        ET.SubElement(item, "title").text = ep.title
        ET.SubElement(item, "description").text = "Audio file converted from YouTube"
        ET.SubElement(item, "enclosure", {"url": url, "length": str(ep.size), "type": "audio/mpeg"})
        ET.SubElement(item, "guid").text = url
        ET.SubElement(item, "pubDate").text = ep.pub_date
        ET.SubElement(item, "isNormalized").text = "true" if ep.is_normalized else "false"
        ET.SubElement(item, f"{{{ITUNES_NS}}}duration").text = ep.duration

    body = ET.tostring(rss, encoding="unicode")
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + body
