"""
Incremental XMLTV parser

Feeds raw XML bytes into an lxml pull parser and turns <programme> elements
into EpgProgram records as soon as each element closes, so a multi-megabyte
guide never has to be held as a complete tree.
"""
from __future__ import annotations

import logging

from lxml import etree  # type: ignore

from iptv_ingest.errors import ParseError
from iptv_ingest.models import EpgIndex, EpgProgram
from iptv_ingest.utils.timezone import parse_xmltv_time


logger = logging.getLogger(__name__)


class XmltvProgramParser:
    """
    Event-driven XMLTV reader building an EpgIndex.

    Programmes are appended to index[channel] in document order. A
    programme missing channel, start, stop or title, or with a timestamp
    that cannot be parsed, is dropped.
    """

    def __init__(self) -> None:
        self.index: EpgIndex = {}
        self.programs_parsed = 0
        self.programs_dropped = 0

        self._parser = etree.XMLPullParser(
            events=("start", "end"),
            recover=True,
            resolve_entities=False,
            no_network=True,
            huge_tree=True,
        )
        self._in_programme = False
        self._channel_id: str | None = None
        self._start: str | None = None
        self._stop: str | None = None
        self._title: str | None = None
        self._desc: str | None = None

    def feed(self, data: bytes) -> None:
        """Feed a chunk of XML and process every event it completes."""
        try:
            self._parser.feed(data)
        except etree.XMLSyntaxError as e:
            raise ParseError(f"XMLTV syntax error: {e}") from e
        self._drain()

    def close(self) -> EpgIndex:
        """Finish the document and return the index."""
        try:
            self._parser.close()
        except etree.XMLSyntaxError as e:
            # Truncated trailing markup: keep what was already indexed
            logger.warning(f"XMLTV document ended abruptly: {e}")
        self._drain()

        logger.info(
            f"XMLTV parsing complete: {len(self.index)} channels, "
            f"{self.programs_parsed} programs ({self.programs_dropped} dropped)"
        )
        return self.index

    def _drain(self) -> None:
        for event, element in self._parser.read_events():
            tag = _local_name(element.tag)
            if event == "start":
                if tag == "programme":
                    self._begin_programme(element)
                continue

            if tag == "programme":
                self._end_programme()
                # Release finished subtrees to keep memory flat
                element.clear()
                parent = element.getparent()
                if parent is not None:
                    while element.getprevious() is not None:
                        del parent[0]
            elif tag == "channel" and not self._in_programme:
                element.clear()
            elif self._in_programme and tag == "title" and self._title is None:
                self._title = (element.text or "").strip()
            elif self._in_programme and tag == "desc" and self._desc is None:
                self._desc = _text(element)

    def _begin_programme(self, element: etree._Element) -> None:
        self._in_programme = True
        self._channel_id = element.get("channel")
        self._start = element.get("start")
        self._stop = element.get("stop")
        self._title = None
        self._desc = None

    def _end_programme(self) -> None:
        self._in_programme = False
        program = self._build_program()
        if program is None:
            self.programs_dropped += 1
            return
        self.index.setdefault(program.channel_id, []).append(program)
        self.programs_parsed += 1

    def _build_program(self) -> EpgProgram | None:
        if not self._channel_id or not self._start or not self._stop or self._title is None:
            return None

        try:
            start_time = parse_xmltv_time(self._start)
            stop_time = parse_xmltv_time(self._stop)
        except ParseError as e:
            logger.debug(f"Skipping programme for {self._channel_id}: {e}")
            return None

        return EpgProgram(
            channel_id=self._channel_id,
            start=start_time,
            stop=stop_time,
            title=self._title,
            description=self._desc,
        )


def parse_xmltv_bytes(data: bytes) -> EpgIndex:
    """Parse a complete XMLTV document held in memory."""
    parser = XmltvProgramParser()
    parser.feed(data)
    return parser.close()


def _local_name(tag) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _text(element: etree._Element) -> str | None:
    text = (element.text or "").strip()
    return text or None
