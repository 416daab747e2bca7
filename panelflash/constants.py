"""Module-wide constants for PanelFlash."""

PRODUCT_NAME = "panelflash"

DEFAULT_MODEL_NAME = "gemini-2.5-flash-image-preview"
DEFAULT_TRANSCRIBE_MODEL_NAME = "gemini-2.5-flash"
DEFAULT_TIMEOUT_S = 60.0
DEFAULT_DEBUG = False
GEMINI_API_KEY_ENV_CANDIDATES = ("GEMINI_API_KEY", "GOOGLE_API_KEY", "PANELFLASH_API_KEY")

# Dispatcher
DEFAULT_MIN_INTERVAL_MS = 3000
QUEUE_ID_LENGTH = 9

# Camera
DEFAULT_REAR_CAMERA_INDEX = 1
DEFAULT_CAMERA_INDEX = 0
DEFAULT_CAPTURE_WIDTH = 1280
DEFAULT_CAPTURE_HEIGHT = 720
FRAME_WIDTH = 512
FRAME_HEIGHT = 288
DEFAULT_JPEG_QUALITY = 80
FACING_ENVIRONMENT = "environment"

# Recording
DEFAULT_VIDEO_MAX_MS = 30000
DEFAULT_AUDIO_MAX_MS = 5000
DEFAULT_AUDIO_SAMPLE_RATE = 16000
AUDIO_BIT_DEPTH = 16
VIDEO_FALLBACK_FPS = 30.0

DEFAULT_OUTPUT_DIR = "./panelflash-output"
DEFAULT_EVENT_LOG_MAX_BYTES = 1024 * 1024

# Messages surfaced to the user
API_KEY_REQUIRED = "API key is required"
UNKNOWN_ERROR = "Unknown error occurred"
NO_RESPONSE = "No response received from API"
NO_SPEECH_DETECTED = "No speech detected. Please try speaking louder."
NO_AUDIO_TRACK = "No audio track available. Please allow microphone access."
NO_VIDEO_TRACK = "No video track available. Start the camera first."
TRANSCRIPTION_FAILED = "Transcription failed"
AUDIO_PROCESSING_FAILED = "Audio processing failed"
RECORDING_UNSUPPORTED = "Recording not supported on this system"
FRAME_CAPTURE_FAILED = "Could not capture camera frame"
COMMAND_IN_FLIGHT = "A command is already being processed. Try again when it finishes."
NO_IMAGE_TO_EDIT = "No image to edit. Generate an image first."
FUSE_NEEDS_TWO_IMAGES = "Please upload two images to fuse."

# Prompt templates
GENERATE_TEMPLATE = "Generate an image based on this prompt: {prompt}"
EDIT_TEMPLATE = "Edit this image based on the following instruction: {prompt}"
FUSE_TEMPLATE = "Fuse these two images together based on this instruction: {prompt}"
TRANSCRIBE_INSTRUCTION = (
    "Transcribe the spoken words in this audio clip. "
    "Return only the transcript text. If nothing is said, return an empty response."
)
LIVE_FIRST_TEMPLATE = (
    "Transform this camera view: {command}. "
    "Make it look realistic and maintain the original perspective and lighting."
)
LIVE_FOLLOWUP_TEMPLATE = (
    "Apply this transformation to the camera view: {command}. "
    "Keep the scene realistic but transform it according to the instruction."
)

SAMPLE_PROMPTS = (
    "Cyberpunk city",
    "Underwater world",
    "Winter wonderland",
    "Outer space",
    "Medieval castle",
    "Storm clouds",
    "Tropical beach",
    "Sci-fi future",
)
