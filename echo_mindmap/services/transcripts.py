"""
Caption retrieval for video URLs.

Captions are best effort: when they cannot be fetched the extractor hands the
model a hint asking it to infer the topic from the URL instead, so a request
never fails just because a video has no captions.
"""

import os
import re
import logging
from typing import List, Optional, Union

import yt_dlp
from youtube_transcript_api import YouTubeTranscriptApi

from echo_mindmap.errors import ExtractionFailure
from echo_mindmap.graph.state import ExtractedContent

logger = logging.getLogger("echo-transcripts")

# Bounds the size of the generation request
MAX_CONTENT_CHARS = 30_000

VIDEO_ID_PATTERN = re.compile(r"(?:[?&]v=|youtu\.be/|/shorts/|/embed/|/live/)([0-9A-Za-z_-]{11})")
BARE_VIDEO_ID = re.compile(r"^[0-9A-Za-z_-]{11}$")

INFERENCE_HINT = """
You are an expert teacher.
No captions are available for this YouTube video.
Work out what the video is about and explain its full topic
as a complete educational mind map.

Video URL:
{url}
"""


def parse_video_id(url: str) -> Optional[str]:
    """Pulls the 11-character video id out of a YouTube URL (or a bare id)."""
    url = url.strip()
    if BARE_VIDEO_ID.match(url):
        return url
    match = VIDEO_ID_PATTERN.search(url)
    return match.group(1) if match else None


def build_inference_hint(url: str, title: Optional[str] = None) -> str:
    hint = INFERENCE_HINT.format(url=url)
    if title:
        hint += f"Video title:\n{title}\n"
    return hint


class YouTubeCaptionFetcher:
    """Fetches caption texts for a full YouTube URL through youtube-transcript-api."""

    def __init__(self, api: Optional[YouTubeTranscriptApi] = None):
        self.api = api or YouTubeTranscriptApi()

    def fetch_transcript(self, url: str) -> List[str]:
        video_id = parse_video_id(url)
        if not video_id:
            raise ValueError(f"not a recognised YouTube URL: {url}")
        return [snippet.text for snippet in self.api.fetch(video_id)]


class TranscriptService:
    def __init__(self, fetcher=None, metadata_lookup: Optional[bool] = None):
        self.fetcher = fetcher or YouTubeCaptionFetcher()
        if metadata_lookup is None:
            metadata_lookup = os.getenv("HINT_METADATA_LOOKUP", "false").lower() in ("1", "true", "yes")
        self.metadata_lookup = metadata_lookup

    def fetch_segments(self, url: str) -> Union[List[str], ExtractionFailure]:
        """Returns the ordered caption texts, or an ExtractionFailure describing why not."""
        try:
            segments = list(self.fetcher.fetch_transcript(url))
        except Exception as e:
            # Bad URLs, the CouldNotRetrieveTranscript family and network errors all land here
            return ExtractionFailure(url, f"{type(e).__name__}: {e}")

        if not any(segment.strip() for segment in segments):
            return ExtractionFailure(url, "transcript is empty")
        return segments

    def lookup_title(self, url: str) -> Optional[str]:
        """Reads the video title through yt-dlp without downloading anything."""
        ydl_opts = {
            "quiet": True,
            "no_warnings": True,
            "skip_download": True,
        }
        try:
            with yt_dlp.YoutubeDL(ydl_opts) as ydl:
                info = ydl.extract_info(url, download=False)
        except Exception as e:
            logger.warning(f"Metadata lookup failed for {url}: {e}")
            return None
        return (info or {}).get("title")

    def extract_text(self, url: str) -> ExtractedContent:
        """
        Produces the text the model should work from: the captions, or an
        inference hint embedding the URL when captions are unavailable.
        """
        result = self.fetch_segments(url)

        if isinstance(result, ExtractionFailure):
            logger.warning(f"No captions ({result.reason}) -> AI inference mode")
            title = self.lookup_title(url) if self.metadata_lookup else None
            hint = build_inference_hint(url, title)
            return ExtractedContent(text=hint[:MAX_CONTENT_CHARS], is_hint=True)

        text = " ".join(result)
        logger.info(f"Captions found: {len(result)} segments, {len(text)} chars")
        if len(text) > MAX_CONTENT_CHARS:
            logger.info(f"Truncating transcript to {MAX_CONTENT_CHARS} chars")
        return ExtractedContent(text=text[:MAX_CONTENT_CHARS])
