"""
StoryScene - Backend Server
Handles: Auth, Subscriptions & Credits, Image Variations, Text Overlay Editing,
Overlay Downloads, Video Records, Uploads, Transcribe & Summarize, Dashboard
"""

import io
import json
import os
import secrets
import threading
import uuid
from datetime import datetime
from pathlib import Path

from flask import Flask, request, jsonify, send_file, g
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from werkzeug.utils import secure_filename

import auth
import cloudinary_api
import compositor
import dashscope_api
import replicate_api
import subscriptions
import transcriber
import variations
from auth import protect
from store import JsonStore, now_iso

BASE_DIR = Path(__file__).parent


def load_env_file(env_path=BASE_DIR / '.env'):
    """Copy KEY=value lines from .env into the environment without overriding real env vars."""
    if not env_path.exists():
        return
    for line in env_path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        key, value = line.split('=', 1)
        os.environ.setdefault(key.strip(), value.strip().strip('"').strip("'"))


load_env_file()

# Load config
CONFIG_PATH = Path(os.environ.get('STORYSCENE_CONFIG', BASE_DIR / 'config.json'))
with open(CONFIG_PATH) as f:
    CONFIG = json.load(f)


def resolve_path(value):
    path = Path(value)
    return path if path.is_absolute() else BASE_DIR / path


# Ensure directories exist
resolve_path(CONFIG['paths']['temp']).mkdir(parents=True, exist_ok=True)

IS_PRODUCTION = os.environ.get('FLASK_ENV') == 'production'
OVERLAY_SETTINGS = {**compositor.DEFAULT_SETTINGS, **CONFIG.get('overlay', {})}
PLANS = CONFIG['plans']

ALLOWED_IMAGE_EXTENSIONS = {'jpg', 'jpeg', 'png', 'gif', 'webp'}
ALLOWED_VIDEO_EXTENSIONS = transcriber.VIDEO_EXTENSIONS | transcriber.AUDIO_EXTENSIONS

app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = CONFIG['server']['max_upload_mb'] * 1024 * 1024

client_url = os.environ.get('CLIENT_URL') if IS_PRODUCTION else CONFIG['server']['dev_client_url']
CORS(app, origins=[client_url or CONFIG['server']['dev_client_url']], supports_credentials=True)

jwt_secret = auth.get_jwt_secret()
if not jwt_secret:
    print("Warning: JWT_SECRET not set. Using a random secret; tokens will not survive a restart.")
    jwt_secret = secrets.token_hex(32)
app.config['JWT_SECRET'] = jwt_secret
app.config['STORE'] = JsonStore(resolve_path(CONFIG['paths']['db']))

# Per-user variation sets and background transcription jobs (in memory)
VARIATIONS = variations.VariationSessions()
TRANSCRIPTIONS = {}


def get_store():
    return app.config['STORE']


def get_openai_key():
    return os.environ.get('OPENAI_API_KEY')


def start_background(target, *args):
    thread = threading.Thread(target=target, args=args, daemon=True)
    thread.start()
    return thread


def error_response(message, status=400, **extra):
    body = {'success': False, 'error': message}
    body.update(extra)
    return jsonify(body), status


def request_data():
    """JSON body, or the form fields of a multipart request."""
    data = request.get_json(silent=True)
    if data is None:
        data = request.form.to_dict()
    return data


def file_extension(filename):
    return filename.rsplit('.', 1)[-1].lower() if filename and '.' in filename else ''


# ============== SUBSCRIPTION HELPERS ==============

def current_subscription(user):
    """User's subscription, created on first use and rolled over when its cycle ended."""
    store = get_store()
    with store.lock:
        sub = user.get('subscription')
        if not sub:
            sub = subscriptions.new_subscription(subscriptions.DEFAULT_PLAN, PLANS)
            user['subscription'] = sub
            store.save()
        elif subscriptions.renew_if_due(sub, PLANS):
            print(f"Subscription cycle renewed for user {user['id']}")
            store.save()
    return sub


# ============== IMAGE GENERATION ==============

def image_provider():
    return CONFIG['image_generation'].get('provider', 'dashscope')


def image_provider_key():
    if image_provider() == 'replicate':
        return replicate_api.get_replicate_key()
    return dashscope_api.get_dashscope_key()


def generate_variation_images(prompt, count, seed_url=None):
    """Call the configured provider. Returns a list of image URLs."""
    settings = CONFIG['image_generation']
    if image_provider() == 'replicate':
        return replicate_api.generate_images(prompt, n=count, image_url=seed_url)
    return dashscope_api.generate_images(
        prompt,
        n=count,
        ref_image_url=seed_url,
        size=settings.get('size', dashscope_api.DEFAULT_SIZE),
        negative_prompt=settings.get('negative_prompt', dashscope_api.DEFAULT_NEGATIVE_PROMPT),
    )


def read_image_upload(file_storage):
    """Validate an uploaded image and return it as a data URL."""
    ext = file_extension(file_storage.filename)
    if ext not in ALLOWED_IMAGE_EXTENSIONS:
        raise ValueError('Only image files are allowed!')
    raw = file_storage.read()
    if len(raw) > CONFIG['server']['max_image_mb'] * 1024 * 1024:
        raise ValueError(f"Image must be smaller than {CONFIG['server']['max_image_mb']}MB")
    if not raw:
        raise ValueError('Uploaded image is empty')
    mime = file_storage.mimetype or f"image/{'jpeg' if ext == 'jpg' else ext}"
    return compositor.encode_image_data_url(raw, mime)


def seed_image_url(image):
    """
    Turn the optional seed image into a URL the provider can fetch.
    Data URLs go through the CDN first. Returns (url, warning).
    """
    if not image:
        return None, None
    if image.startswith('http://') or image.startswith('https://'):
        return image, None

    compositor.decode_data_url(image)
    if not cloudinary_api.is_configured():
        return None, 'Media storage is not configured, so the uploaded photo was not used as a seed.'
    result = cloudinary_api.upload_file(image, folder=CONFIG['cloudinary']['folder'], resource_type='image')
    return result['secure_url'], None


# ============== TRANSCRIPTION ==============

def run_transcription(job_id, url, file_path, platform):
    """Background task to run the transcribe & summarize pipeline."""
    job = TRANSCRIPTIONS[job_id]
    try:
        job['status'] = 'processing'
        result = transcriber.transcribe_source(
            CONFIG['transcription'],
            url=url,
            file_path=file_path,
            platform=platform,
            api_key=get_openai_key(),
            temp_root=str(resolve_path(CONFIG['paths']['temp'])),
        )
        job.update(result)
        job['status'] = 'completed'
        print(f"Transcription {job_id}: completed, {len(result['transcript'])} chars")
    except Exception as e:
        print(f"Transcription {job_id}: failed: {e}")
        job['status'] = 'failed'
        job['error'] = str(e)


# ============== REQUEST HOOKS & ERRORS ==============

@app.before_request
def log_video_requests():
    if request.path.startswith('/api/videos'):
        print(f"[{datetime.now().isoformat()}] {request.method} {request.path}")


@app.errorhandler(404)
def not_found(e):
    return error_response('Route not found', 404)


@app.errorhandler(413)
def too_large(e):
    return error_response(f"File too large. Maximum upload size is {CONFIG['server']['max_upload_mb']}MB", 413)


@app.errorhandler(Exception)
def server_error(e):
    if isinstance(e, HTTPException):
        return error_response(e.description or e.name, e.code)
    print(f"Unhandled error: {e}")
    return error_response('Something went wrong!', 500)


# ============== API ROUTES ==============

@app.route('/')
def index():
    return jsonify({'message': 'API is running'})


@app.route('/api/health', methods=['GET'])
def health():
    """Process status plus presence (never values) of required secrets."""
    return jsonify({
        'status': 'ok',
        'timestamp': datetime.now().isoformat(),
        'environment': os.environ.get('FLASK_ENV', 'development'),
        'env_vars': {
            'has_jwt_secret': bool(auth.get_jwt_secret()),
            'has_cloudinary': cloudinary_api.is_configured(),
            'has_image_provider_key': bool(image_provider_key()),
            'has_openai_key': bool(get_openai_key()),
        },
        'image_provider': image_provider(),
    })


# ============== AUTH ENDPOINTS ==============

@app.route('/api/auth/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    name = (data.get('name') or '').strip()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    if not name or not email or not password:
        return error_response('Name, email and password are required')
    if '@' not in email:
        return error_response('Please enter a valid email address')
    if len(password) < CONFIG['auth']['min_password_length']:
        return error_response(f"Password must be at least {CONFIG['auth']['min_password_length']} characters")

    store = get_store()
    with store.lock:
        if store.find_user_by_email(email):
            return error_response('User already exists')
        user = store.create_user({
            'name': name,
            'email': email,
            'password_hash': auth.hash_password(password),
            'role': 'user',
            'phone': None,
            'company': None,
            'subscription': subscriptions.new_subscription(subscriptions.DEFAULT_PLAN, PLANS),
        })

    print(f"Registered user {user['id']}")
    token = auth.create_token(user['id'], app.config['JWT_SECRET'], CONFIG['auth']['token_days'])
    return jsonify({'success': True, 'token': token, 'user': auth.public_user(user)}), 201


@app.route('/api/auth/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    user = get_store().find_user_by_email(data.get('email'))
    if not user or not auth.verify_password(user, data.get('password')):
        return error_response('Invalid email or password', 401)

    token = auth.create_token(user['id'], app.config['JWT_SECRET'], CONFIG['auth']['token_days'])
    return jsonify({'success': True, 'token': token, 'user': auth.public_user(user)})


@app.route('/api/auth/profile', methods=['GET'])
@protect
def get_profile():
    current_subscription(g.user)
    return jsonify({'success': True, 'user': auth.public_user(g.user)})


@app.route('/api/auth/profile', methods=['PUT'])
@protect
def update_profile():
    data = request.get_json(silent=True) or {}
    store = get_store()
    fields = {}
    for key in ('name', 'phone', 'company'):
        if data.get(key):
            fields[key] = data[key].strip() if isinstance(data[key], str) else data[key]

    if data.get('email'):
        email = data['email'].strip().lower()
        existing = store.find_user_by_email(email)
        if existing and existing['id'] != g.user['id']:
            return error_response('Email is already in use')
        fields['email'] = email

    user = store.update_user(g.user['id'], **fields)
    return jsonify({'success': True, 'user': auth.public_user(user)})


@app.route('/api/auth/change-password', methods=['PUT'])
@protect
def change_password():
    data = request.get_json(silent=True) or {}
    new_password = data.get('new_password') or ''
    if len(new_password) < CONFIG['auth']['min_password_length']:
        return error_response(f"Password must be at least {CONFIG['auth']['min_password_length']} characters")

    user = g.user
    if user.get('password_hash'):
        if not data.get('current_password'):
            return error_response('Current password is required')
        if not auth.verify_password(user, data['current_password']):
            return error_response('Current password is incorrect', 401)

    get_store().update_user(user['id'], password_hash=auth.hash_password(new_password))
    return jsonify({'success': True, 'message': 'Password updated successfully', 'has_password': True})


@app.route('/api/auth/logout', methods=['POST'])
def logout():
    # Tokens are stateless; the client drops its copy
    return jsonify({'success': True, 'message': 'Logged out successfully'})


# ============== SUBSCRIPTION ENDPOINTS ==============

@app.route('/api/subscriptions/plans', methods=['GET'])
def get_plans():
    return jsonify({'success': True, 'plans': subscriptions.plans_with_savings(PLANS)})


@app.route('/api/subscriptions/status', methods=['GET'])
@protect
def get_subscription_status():
    sub = current_subscription(g.user)
    plan = PLANS.get(sub['plan'], {})
    return jsonify({'success': True, 'subscription': {**sub, 'plan_details': plan}})


@app.route('/api/subscriptions/usage', methods=['GET'])
@protect
def get_subscription_usage():
    sub = current_subscription(g.user)
    return jsonify({'success': True, 'usage': subscriptions.usage_summary(sub)})


@app.route('/api/subscriptions/subscribe', methods=['POST'])
@protect
def subscribe():
    data = request.get_json(silent=True) or {}
    plan = data.get('plan')
    billing_cycle = data.get('billing_cycle', 'monthly')

    store = get_store()
    with store.lock:
        sub = current_subscription(g.user)
        try:
            subscriptions.change_plan(sub, plan, PLANS, billing_cycle)
        except ValueError as e:
            return error_response(str(e))
        store.save()

    print(f"User {g.user['id']} subscribed to {plan} ({billing_cycle})")
    return jsonify({'success': True, 'subscription': sub}), 201


@app.route('/api/subscriptions/cancel', methods=['POST'])
@protect
def cancel_subscription():
    store = get_store()
    with store.lock:
        sub = current_subscription(g.user)
        try:
            subscriptions.cancel(sub)
        except ValueError as e:
            return error_response(str(e))
        store.save()

    return jsonify({
        'success': True,
        'message': 'Subscription canceled at period end',
        'subscription': sub,
    })


@app.route('/api/subscriptions/credits', methods=['GET'])
@protect
def get_credits():
    sub = current_subscription(g.user)
    return jsonify({
        'success': True,
        'credits': {
            'total': sub.get('credits_total', 0),
            'used': sub.get('credits_used', 0),
            'remaining': subscriptions.available_credits(sub),
        },
    })


@app.route('/api/subscriptions/use-credit', methods=['POST'])
@protect
def use_credit():
    store = get_store()
    with store.lock:
        sub = current_subscription(g.user)
        try:
            remaining = subscriptions.consume_credit(sub)
        except subscriptions.CreditError as e:
            return error_response(str(e), 403, credits_remaining=0)
        store.save()
    return jsonify({'success': True, 'credits_remaining': remaining})


# ============== VARIATION ENDPOINTS ==============

@app.route('/api/videos/generate-variations', methods=['POST'])
@protect
def generate_variations():
    """Generate image variations plus suggested phrases for a prompt and optional photo."""
    data = request_data()
    prompt = (data.get('prompt') or '').strip()
    if not prompt:
        return error_response('Please enter a prompt describing your video')

    settings = CONFIG['image_generation']
    try:
        count = int(data.get('count') or settings['default_count'])
    except (TypeError, ValueError):
        return error_response('Count must be a number')
    count = max(1, min(settings['max_count'], count))

    style_key = data.get('style') or 'none'
    if style_key not in settings['style_presets']:
        return error_response(f'Unknown style: {style_key}')
    style_text = settings['style_presets'][style_key]
    full_prompt = f"{prompt}, {style_text}" if style_text else prompt

    if not image_provider_key():
        return error_response('Image generation is not configured', 503)

    warnings = []
    try:
        image = data.get('image')
        if 'image' in request.files:
            image = read_image_upload(request.files['image'])
        seed_url, warning = seed_image_url(image)
        if warning:
            warnings.append(warning)
    except ValueError as e:
        return error_response(str(e))
    except Exception as e:
        print(f"Seed image upload failed: {e}")
        return error_response('Failed to upload image', 502)

    try:
        image_urls = generate_variation_images(full_prompt, count, seed_url)
    except ValueError as e:
        return error_response(str(e), 503)
    except Exception as e:
        print(f"Variation generation failed: {e}")
        return error_response('Failed to generate images. Please try again.', 502)

    if not image_urls:
        return error_response('The image service returned no images. Please try again.', 502)

    phrases = variations.suggest_phrases(
        prompt,
        len(image_urls),
        api_key=get_openai_key(),
        model=CONFIG['phrases']['model'],
        max_words=CONFIG['phrases']['max_words'],
    )
    items = variations.build_variations(image_urls, phrases, OVERLAY_SETTINGS)
    VARIATIONS.replace(g.user['id'], items)

    print(f"Generated {len(items)} variations for user {g.user['id']}")
    return jsonify({
        'success': True,
        'prompt': prompt,
        'variations': [variations.public_variation(v) for v in items],
        'warnings': warnings,
    })


@app.route('/api/variations', methods=['GET'])
@protect
def list_variations():
    items = VARIATIONS.list(g.user['id'])
    return jsonify({'success': True, 'variations': [variations.public_variation(v) for v in items]})


@app.route('/api/variations/<variation_id>', methods=['PATCH'])
@protect
def update_variation(variation_id):
    """Edit overlay text, position, style or visibility of one variation."""
    variation = VARIATIONS.get(g.user['id'], variation_id)
    if variation is None:
        return error_response('Variation not found', 404)

    try:
        variations.apply_edit(variation, request.get_json(silent=True) or {}, OVERLAY_SETTINGS)
    except ValueError as e:
        return error_response(str(e))
    return jsonify({'success': True, 'variation': variations.public_variation(variation)})


@app.route('/api/variations/<variation_id>/reset', methods=['POST'])
@protect
def reset_variation(variation_id):
    variation = VARIATIONS.get(g.user['id'], variation_id)
    if variation is None:
        return error_response('Variation not found', 404)
    variations.reset_variation(variation)
    return jsonify({'success': True, 'variation': variations.public_variation(variation)})


def resolve_overlay_source(data):
    """
    (image source, overlay) from a variation id or an explicit image + overlay body.

    An explicit overlay goes through the same checks as an editor edit, so bad
    values raise ValueError. Returns (None, None) for an unknown variation id.
    """
    variation_id = data.get('variation_id')
    if variation_id:
        if not isinstance(variation_id, str):
            raise ValueError('variation_id must be text')
        variation = VARIATIONS.get(g.user['id'], variation_id)
        if variation is None:
            return None, None
        return variation['image_url'], variation

    image = data.get('image')
    if image is not None and not isinstance(image, str):
        raise ValueError('Image must be a URL or data URL')
    if 'overlay' not in data:
        return image, {}
    return image, variations.overlay_from_request(image, data['overlay'], OVERLAY_SETTINGS)


def json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@app.route('/api/videos/download', methods=['POST'])
@protect
def download_overlay():
    """Render the overlay and return it as a PNG download. Costs one credit."""
    data = json_body()
    try:
        image, overlay = resolve_overlay_source(data)
    except ValueError as e:
        return error_response(str(e))
    if overlay is None:
        return error_response('Variation not found', 404)
    if not image and not (overlay.get('phrase') or overlay.get('text')):
        return error_response('Nothing to download: provide an image or overlay text')

    store = get_store()
    sub = current_subscription(g.user)
    if subscriptions.available_credits(sub) <= 0:
        return error_response(
            'You have no credits remaining. Upgrade your plan to download more images.',
            403,
            credits_remaining=0,
        )

    try:
        result = compositor.compose_overlay(image, overlay, OVERLAY_SETTINGS)
    except ValueError as e:
        return error_response(str(e))

    with store.lock:
        try:
            remaining = subscriptions.consume_credit(sub)
        except subscriptions.CreditError as e:
            return error_response(str(e), 403, credits_remaining=0)
        store.save()

    name = secure_filename(data.get('variation_id') or uuid.uuid4().hex[:8])
    response = send_file(
        io.BytesIO(result['data']),
        mimetype='image/png',
        as_attachment=True,
        download_name=f'storyscene-{name}.png',
    )
    response.headers['X-Credits-Remaining'] = str(remaining)
    if result['fallback']:
        response.headers['X-Overlay-Warning'] = result['warning']
    return response


# ============== VIDEO ENDPOINTS ==============

def video_summary(video):
    return {
        'id': video['id'],
        'title': video['title'],
        'video_url': video.get('video_url'),
        'thumbnail_url': video.get('thumbnail_url'),
        'prompt': video.get('prompt'),
        'status': video.get('status'),
        'created_at': video.get('created_at'),
    }


@app.route('/api/videos', methods=['GET'])
@protect
def list_videos():
    videos = get_store().list_videos(g.user['id'])
    return jsonify({
        'success': True,
        'count': len(videos),
        'videos': [video_summary(v) for v in videos],
    })


@app.route('/api/videos/generate', methods=['POST'])
@protect
def generate_video():
    """Store the composed result on the CDN and record it as a video against the quota."""
    data = json_body()
    title = data.get('title') or data.get('prompt') or ''
    if not isinstance(title, str) or not title.strip():
        return error_response('A title or prompt is required')
    title = title.strip()

    try:
        image, overlay = resolve_overlay_source(data)
    except ValueError as e:
        return error_response(str(e))
    if overlay is None:
        return error_response('Variation not found', 404)
    if not image:
        return error_response('An image is required')

    sub = current_subscription(g.user)
    if subscriptions.videos_remaining(sub) <= 0:
        return error_response(
            'You have reached your video limit for this month',
            403,
            details={
                'current': sub.get('videos_used', 0),
                'limit': sub.get('videos_limit', 0),
                'plan': sub.get('plan'),
            },
        )

    if not cloudinary_api.is_configured():
        return error_response('Media storage is not configured', 503)

    try:
        if data.get('variation_id') or overlay:
            rendered = compositor.compose_overlay(image, overlay, OVERLAY_SETTINGS)
            upload = cloudinary_api.upload_file(
                rendered['data'], folder=CONFIG['cloudinary']['folder'],
                resource_type='image', filename='composed.png')
        else:
            upload = cloudinary_api.upload_file(
                image, folder=CONFIG['cloudinary']['folder'], resource_type='image')
    except ValueError as e:
        return error_response(str(e))
    except Exception as e:
        print(f"Video generation error: {e}")
        return error_response('Failed to generate video', 502)

    store = get_store()
    with store.lock:
        try:
            subscriptions.record_video(sub)
        except subscriptions.CreditError as e:
            return error_response(str(e), 403)
        video = store.create_video({
            'user_id': g.user['id'],
            'title': title,
            'description': data.get('description') or f'Generated from: {title}',
            'prompt': data.get('prompt'),
            'video_url': upload['secure_url'],
            'thumbnail_url': cloudinary_api.get_file_url(
                upload['public_id'], transformation='w_300,h_500,c_fill'),
            'public_id': upload['public_id'],
            'status': 'completed',
            'created_at': now_iso(),
        })

    return jsonify({'success': True, 'video': video_summary(video)}), 201


@app.route('/api/videos/<video_id>', methods=['GET'])
@protect
def get_video(video_id):
    video = get_store().get_video(video_id)
    if video is None:
        return error_response('Video not found', 404)
    if video.get('user_id') != g.user['id']:
        return error_response('Not authorized to access this video', 403)
    return jsonify({'success': True, 'video': {**video_summary(video), 'description': video.get('description')}})


@app.route('/api/videos/upload', methods=['POST'])
@protect
def upload_media():
    """Upload a video or image file to the media CDN."""
    file = request.files.get('video') or request.files.get('image')
    if file is None or not file.filename:
        return error_response('No file provided')

    ext = file_extension(file.filename)
    if 'video' in request.files:
        if ext not in ALLOWED_VIDEO_EXTENSIONS:
            return error_response('Unsupported video format: ' + (ext or 'unknown'))
        resource_type = 'video'
    else:
        if ext not in ALLOWED_IMAGE_EXTENSIONS:
            return error_response('Only image files are allowed!')
        resource_type = 'image'

    if not cloudinary_api.is_configured():
        return error_response('Media storage is not configured', 503)

    raw = file.read()
    if resource_type == 'image' and len(raw) > CONFIG['server']['max_image_mb'] * 1024 * 1024:
        return error_response(f"Image must be smaller than {CONFIG['server']['max_image_mb']}MB")

    try:
        result = cloudinary_api.upload_file(
            raw, folder=CONFIG['cloudinary']['folder'],
            resource_type=resource_type, filename=secure_filename(file.filename))
    except Exception as e:
        print(f"Upload failed: {e}")
        return error_response('Failed to upload file', 502)

    return jsonify({
        'success': True,
        'url': result['secure_url'],
        'video_url': result['secure_url'] if resource_type == 'video' else None,
        'public_id': result['public_id'],
    })


# ============== TRANSCRIPTION ENDPOINTS ==============

@app.route('/api/videos/transcribe', methods=['POST'])
@protect
def start_transcription():
    """Start transcribe & summarize for a video URL or an uploaded file."""
    url = None
    file_path = None
    platform = None

    if 'video' in request.files:
        video = request.files['video']
        ext = file_extension(video.filename)
        if ext not in ALLOWED_VIDEO_EXTENSIONS:
            return error_response('Unsupported video format: ' + (ext or 'unknown'))
        temp_dir = resolve_path(CONFIG['paths']['temp']) / 'transcriptions'
        temp_dir.mkdir(parents=True, exist_ok=True)
        file_path = str(temp_dir / f"{uuid.uuid4().hex[:8]}_{secure_filename(video.filename)}")
        video.save(file_path)
    else:
        data = request_data()
        url = (data.get('url') or '').strip()
        platform = data.get('platform') or None
        try:
            platform = transcriber.validate_url(url, platform)
        except ValueError as e:
            return error_response(str(e))

    if not transcriber.WHISPER_AVAILABLE and not get_openai_key():
        if file_path:
            os.remove(file_path)
        return error_response('No transcription method available. Configure OpenAI API key.', 503)

    transcription_id = uuid.uuid4().hex[:8]
    TRANSCRIPTIONS[transcription_id] = {
        'id': transcription_id,
        'user_id': g.user['id'],
        'status': 'pending',
        'source': url or 'upload',
        'platform': platform or 'upload',
        'transcript': None,
        'summary': None,
        'language': None,
        'error': None,
        'created_at': now_iso(),
    }

    start_background(run_transcription, transcription_id, url, file_path, platform)

    return jsonify({
        'success': True,
        'transcription_id': transcription_id,
        'status': TRANSCRIPTIONS[transcription_id]['status'],
    }), 202


@app.route('/api/videos/transcription/<transcription_id>', methods=['GET'])
@protect
def get_transcription(transcription_id):
    job = TRANSCRIPTIONS.get(transcription_id)
    if job is None or job['user_id'] != g.user['id']:
        return error_response('Transcription not found', 404)

    return jsonify({
        'success': True,
        'data': {key: job[key] for key in (
            'id', 'status', 'source', 'platform', 'transcript', 'summary', 'language', 'error')},
    })


# ============== DASHBOARD ==============

@app.route('/api/dashboard', methods=['GET'])
@protect
def dashboard():
    sub = current_subscription(g.user)
    recent = get_store().list_videos(g.user['id'], limit=5)
    return jsonify({
        'success': True,
        'user': {'name': g.user.get('name'), 'email': g.user.get('email')},
        'usage': subscriptions.usage_summary(sub),
        'recent_videos': [video_summary(v) for v in recent],
        # Analytics are not collected yet; the client shows an empty state
        'analytics': {
            'views': 0,
            'likes': 0,
            'shares': 0,
            'engagement_rate': 0.0,
        },
    })


subscriptions.reset_expired_subscriptions(get_store(), PLANS)


if __name__ == '__main__':
    port = int(os.environ.get('PORT', CONFIG['server']['port']))
    app.run(debug=not IS_PRODUCTION, port=port, host='127.0.0.1')
