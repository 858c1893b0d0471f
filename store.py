"""
JSON document store for users and videos.

Everything lives in one JSON file; reads come from memory and every write
rewrites the file through a temp file + rename.
"""

import json
import os
import threading
import uuid
from pathlib import Path
from datetime import datetime


def new_id():
    return uuid.uuid4().hex[:12]


def now_iso():
    return datetime.now().isoformat()


class JsonStore:
    def __init__(self, path):
        self.path = Path(path)
        self.lock = threading.RLock()
        self.data = self._load()

    def _load(self):
        """Load the database from disk, starting empty if missing or unreadable."""
        if self.path.exists():
            try:
                with open(self.path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
                data.setdefault('users', {})
                data.setdefault('videos', {})
                return data
            except (OSError, json.JSONDecodeError) as e:
                print(f"Error loading database {self.path}: {e}")
        return {'users': {}, 'videos': {}}

    def save(self):
        with self.lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(self.data, f, indent=2, default=str)
            os.replace(tmp_path, self.path)

    # ---- users ----

    def create_user(self, user):
        with self.lock:
            user.setdefault('id', new_id())
            user.setdefault('created_at', now_iso())
            self.data['users'][user['id']] = user
            self.save()
            return user

    def get_user(self, user_id):
        return self.data['users'].get(user_id)

    def find_user_by_email(self, email):
        if not email:
            return None
        email = email.strip().lower()
        for user in self.data['users'].values():
            if user.get('email', '').lower() == email:
                return user
        return None

    def update_user(self, user_id, **fields):
        with self.lock:
            user = self.data['users'].get(user_id)
            if user is None:
                return None
            user.update(fields)
            self.save()
            return user

    def all_users(self):
        return list(self.data['users'].values())

    # ---- videos ----

    def create_video(self, video):
        with self.lock:
            video.setdefault('id', new_id())
            video.setdefault('created_at', now_iso())
            self.data['videos'][video['id']] = video
            self.save()
            return video

    def get_video(self, video_id):
        return self.data['videos'].get(video_id)

    def list_videos(self, user_id, limit=None):
        """User's videos, newest first."""
        videos = [v for v in self.data['videos'].values() if v.get('user_id') == user_id]
        videos.sort(key=lambda v: v.get('created_at', ''), reverse=True)
        if limit:
            videos = videos[:limit]
        return videos
