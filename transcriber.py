"""
Transcribe & summarize: fetches a social-media or direct video, extracts the
audio track, transcribes it with Whisper and summarizes the transcript.
"""

import os
import re
import shutil
import subprocess
import tempfile
from pathlib import Path

import requests
import yt_dlp
from openai import OpenAI
from pydub import AudioSegment

# Local Whisper is optional; the OpenAI Whisper API is used when it is missing
try:
    import whisper
    WHISPER_AVAILABLE = True
except ImportError:
    whisper = None
    WHISPER_AVAILABLE = False

WHISPER_MODEL = None

PLATFORM_PATTERNS = {
    'youtube': re.compile(r'^(https?://)?(www\.|m\.)?(youtube\.com|youtu\.be)/.+$', re.IGNORECASE),
    'tiktok': re.compile(r'^(https?://)?(www\.|vm\.|vt\.)?(tiktok\.com)/.+$', re.IGNORECASE),
    'instagram': re.compile(r'^(https?://)?(www\.)?(instagram\.com)/.+$', re.IGNORECASE),
    'direct': re.compile(r'^https?://.+$', re.IGNORECASE),
}

PLATFORM_LABELS = {
    'youtube': 'YouTube',
    'tiktok': 'TikTok',
    'instagram': 'Instagram',
    'direct': 'video',
}

VIDEO_EXTENSIONS = {'mp4', 'mov', 'webm', 'mkv', 'avi', 'm4v'}
AUDIO_EXTENSIONS = {'wav', 'mp3', 'm4a', 'ogg', 'flac', 'aac', 'webm'}


def detect_platform(url):
    for platform in ('youtube', 'tiktok', 'instagram'):
        if PLATFORM_PATTERNS[platform].match(url):
            return platform
    return 'direct'


def validate_url(url, platform=None):
    """Check a URL against the selected platform. Returns the platform; raises ValueError."""
    if not url or not url.strip():
        raise ValueError('Please enter a video URL or upload a video file')
    url = url.strip()
    platform = platform or detect_platform(url)
    pattern = PLATFORM_PATTERNS.get(platform)
    if pattern is None:
        raise ValueError(f'Unsupported platform: {platform}')
    if not pattern.match(url):
        raise ValueError(f'Please enter a valid {PLATFORM_LABELS[platform]} URL')
    return platform


def check_ffmpeg_available():
    try:
        subprocess.run(['ffmpeg', '-version'], capture_output=True, check=True)
        return True
    except (subprocess.CalledProcessError, FileNotFoundError):
        return False


# ============== DOWNLOAD ==============

def download_social_video(url, work_dir):
    """Download the best audio track (or full video) of a social post with yt-dlp."""
    ydl_opts = {
        'format': 'bestaudio/best',
        'outtmpl': str(Path(work_dir) / 'source.%(ext)s'),
        'quiet': True,
        'no_warnings': True,
        'noplaylist': True,
    }
    with yt_dlp.YoutubeDL(ydl_opts) as ydl:
        info = ydl.extract_info(url, download=True)
        path = ydl.prepare_filename(info)
    print(f"Downloaded {info.get('extractor_key', 'video')}: {info.get('title', url)}")
    return path


def download_direct_video(url, work_dir, timeout=60):
    ext = Path(url.split('?', 1)[0]).suffix.lstrip('.').lower() or 'mp4'
    path = Path(work_dir) / f'source.{ext}'
    with requests.get(url, stream=True, timeout=timeout) as response:
        response.raise_for_status()
        with open(path, 'wb') as f:
            for chunk in response.iter_content(chunk_size=1024 * 1024):
                f.write(chunk)
    return str(path)


def download_video(url, work_dir, platform=None):
    platform = validate_url(url, platform)
    if platform == 'direct':
        return download_direct_video(url, work_dir)
    return download_social_video(url, work_dir)


# ============== AUDIO + TRANSCRIPTION ==============

def extract_audio(media_path, work_dir):
    """Convert media to mono 16kHz mp3 for transcription. Returns the original path without ffmpeg."""
    if not check_ffmpeg_available():
        print("FFmpeg not installed - sending original file to transcription")
        return media_path

    audio = AudioSegment.from_file(media_path)
    audio = audio.set_channels(1).set_frame_rate(16000)
    audio_path = str(Path(work_dir) / 'audio.mp3')
    audio.export(audio_path, format='mp3', bitrate='64k')
    return audio_path


def get_whisper_model(model_name='base'):
    """Lazy-load Whisper model on first use."""
    global WHISPER_MODEL
    if WHISPER_MODEL is None:
        print(f"Loading Whisper model '{model_name}'... (this may take a moment on first run)")
        WHISPER_MODEL = whisper.load_model(model_name)
    return WHISPER_MODEL


def transcribe_audio_openai(audio_path, api_key, model='whisper-1', language=None):
    """Transcribe audio using OpenAI's Whisper API. Returns (text, language)."""
    client = OpenAI(api_key=api_key)
    print("Transcribing with OpenAI Whisper API...")
    with open(audio_path, 'rb') as audio_file:
        kwargs = {'model': model, 'file': audio_file}
        if language:
            kwargs['language'] = language
        result = client.audio.transcriptions.create(**kwargs)
    text = result.text.strip() if result.text else ''
    print(f"OpenAI transcription complete: {len(text)} chars")
    return text, language


def transcribe_audio_file(audio_path, settings, api_key=None):
    """Transcribe with local Whisper when installed, otherwise the OpenAI API."""
    language = settings.get('language')
    if WHISPER_AVAILABLE:
        model = get_whisper_model(settings.get('whisper_model', 'base'))
        print("Transcribing with local Whisper...")
        result = model.transcribe(audio_path, language=language, fp16=False)
        text = result.get('text', '').strip()
        print(f"Local Whisper transcription complete: {len(text)} chars")
        return text, result.get('language', language)

    if api_key:
        return transcribe_audio_openai(audio_path, api_key, settings.get('openai_model', 'whisper-1'), language)

    raise Exception("No transcription method available. Install openai-whisper or configure OpenAI API key.")


# ============== SUMMARY ==============

def split_sentences(text):
    return [s.strip() for s in re.split(r'(?<=[.!?])\s+', text.strip()) if s.strip()]


def extractive_summary(text, max_sentences=3):
    """Leading sentences of the transcript, used when no LLM is available."""
    sentences = split_sentences(text)
    if not sentences:
        return ''
    return ' '.join(sentences[:max_sentences])


def summarize_transcript(text, api_key=None, model='gpt-4o-mini', max_sentences=3):
    if not text:
        return ''
    if not api_key:
        return extractive_summary(text, max_sentences)

    try:
        client = OpenAI(api_key=api_key)
        response = client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": (
                    "You summarize transcripts of short social-media videos. "
                    "Write a concise summary of the key points in plain prose. "
                    "Begin directly with the content; do not refer to the video or the speaker."
                )},
                {"role": "user", "content": text},
            ],
        )
        summary = (response.choices[0].message.content or '').strip()
        return summary or extractive_summary(text, max_sentences)
    except Exception as e:
        print(f"Summary generation failed, using extractive summary: {e}")
        return extractive_summary(text, max_sentences)


# ============== PIPELINE ==============

def transcribe_source(settings, url=None, file_path=None, platform=None, api_key=None, temp_root=None):
    """
    Full pipeline for a URL or an already-saved upload.
    Returns dict with transcript, summary, language and platform.
    """
    work_dir = tempfile.mkdtemp(prefix='transcribe_', dir=temp_root)
    try:
        if file_path:
            media_path = file_path
            platform = 'upload'
        else:
            platform = validate_url(url, platform)
            media_path = download_video(url, work_dir, platform)

        audio_path = extract_audio(media_path, work_dir)
        text, language = transcribe_audio_file(audio_path, settings, api_key)
        summary = summarize_transcript(
            text, api_key,
            settings.get('summary_model', 'gpt-4o-mini'),
            settings.get('summary_sentences', 3),
        )
        return {
            'transcript': text,
            'summary': summary,
            'language': language,
            'platform': platform,
        }
    finally:
        shutil.rmtree(work_dir, ignore_errors=True)
        if file_path and os.path.exists(file_path):
            os.remove(file_path)
