CONTROL_API_HOST = "127.0.0.1"
CONTROL_API_PORT = 8017
CONTROL_API_URL = f"http://{CONTROL_API_HOST}:{CONTROL_API_PORT}"

SAMPLE_RATE = 16000
CHUNK_SAMPLES = 4000

VOSK_MODEL_NAME = "vosk-model-small-en-us-0.15"
VOSK_MODEL_URL = f"https://alphacephei.com/vosk/models/{VOSK_MODEL_NAME}.zip"

CUSTOM_COMMANDS_FILES = ("commands.csv", "custom_commands.csv")


CONFIDENCE_THRESHOLD = 0.75
CONFIDENCE_THRESHOLD_RANGE = (0.50, 0.95)
TRAINER_MODE_THRESHOLD = 0.80
LOW_CONFIDENCE_THRESHOLD = 0.65

RATE_LIMIT_MS = 300
RATE_LIMIT_RANGE_MS = (100, 2000)
MAX_QUEUE_SIZE = 5
MAX_QUEUE_RANGE = (1, 20)
KEY_PRESS_DELAY_MS = 50
KEY_PRESS_DELAY_RANGE_MS = (10, 200)

HISTORY_SIZE = 50
RECOGNITION_LOG_SIZE = 50

MAX_RESTART_ATTEMPTS = 5
RESTART_DELAY_MS = 1000

FUZZY_MIN_DISTANCE = 2
FUZZY_ERROR_RATIO = 0.3

FATAL_ENGINE_ERRORS = {"audio-capture", "not-allowed", "service-not-allowed"}


NUMBER_WORDS = {
    "zero": "0",
    "one": "1",
    "two": "2",
    "three": "3",
    "four": "4",
    "five": "5",
    "six": "6",
    "seven": "7",
    "eight": "8",
    "nine": "9",
    "ten": "10",
}


# (phrases, key, description, priority)
# 1 = racing, 2 = training, 3 = convenience
DEFAULT_COMMANDS = [
    (["elbow flick", "elbow", "signal", "flick", "elbow flex"], "4", "Elbow flick signal", 1),
    (["power up", "use power up", "activate", "powerup", "power-up", "use powerup", "boost"], "space", "Use power-up", 1),
    (["turn left", "left", "go left", "take left"], "left", "Turn left", 1),
    (["turn right", "right", "go right", "take right"], "right", "Turn right", 1),
    (["go straight", "straight", "straight on", "straight ahead"], "up", "Go straight", 1),
    (["camera 1", "camera one", "view 1", "view one"], "1", "Camera view 1", 1),
    (["camera 2", "camera two", "view 2", "view two"], "2", "Camera view 2", 1),
    (["camera 3", "camera three", "view 3", "view three", "behind view"], "3", "Camera view 3 (behind)", 1),
    (["camera 4", "camera four", "view 4", "view four"], "5", "Camera view 4", 1),
    (["camera 5", "camera five", "view 5", "view five"], "6", "Camera view 5", 1),
    (["camera 6", "camera six", "view 6", "view six"], "7", "Camera view 6", 1),
    (["camera 7", "camera seven", "view 7", "view seven"], "8", "Camera view 7", 1),
    (["camera 8", "camera eight", "view 8", "view eight"], "9", "Camera view 8", 1),
    (["camera 9", "camera nine", "view 9", "view nine", "drone view", "drone"], "0", "Camera view 9 (drone)", 1),

    (["u turn", "u-turn", "turn around", "reverse", "go back", "uturn"], "down", "U-Turn", 2),
    (["screenshot", "take picture", "capture", "photo", "take photo", "snap"], "f10", "Take screenshot", 2),
    (["wave", "say hi", "hello", "hi there"], "5", "Wave", 2),
    (["ride on", "rideon", "ride-on", "thumbs up"], "6", "Ride On!", 2),
    (["hammer", "hammer time", "hammertime"], "7", "Hammer time", 2),
    (["toast", "cheers", "drink"], "8", "Toast", 2),
    (["nice", "nice one", "good job"], "9", "Nice!", 2),
    (["bring it", "bring it on", "lets go", "let's go"], "0", "Bring it!", 2),
    (["skip", "skip block", "next block", "skip workout"], "tab", "Skip workout block", 2),
    (["easier", "bias down", "reduce", "lower"], "pagedown", "Decrease difficulty", 2),
    (["harder", "bias up", "increase", "raise"], "pageup", "Increase difficulty", 2),

    (["menu", "show menu", "customize", "change gear", "garage", "pause"], "escape", "Open menu", 3),
    (["panoramic view", "wide view", "panoramic", "pan view"], "0", "Panoramic view", 3),
    (["graph", "show graph", "toggle graph", "stats"], "g", "Toggle graph", 3),
    (["hide", "hide ui", "clean view", "minimal"], "h", "Hide UI", 3),
    (["fan up", "increase fan", "more fan"], "pageup", "Fan speed up", 3),
    (["fan down", "decrease fan", "less fan"], "pagedown", "Fan speed down", 3),
]


COMMAND_DESCRIPTIONS = {
    "space": "Use Power-up",
    "left": "Turn Left",
    "right": "Turn Right",
    "up": "Go Straight",
    "down": "U-Turn",
    "escape": "Menu",
    "tab": "Skip Block",
    "pageup": "Increase Difficulty",
    "pagedown": "Decrease Difficulty",
    "f10": "Screenshot",
    "0": "Bring It / Panoramic",
    "1": "Camera 1",
    "2": "Camera 2",
    "3": "Camera 3",
    "4": "Elbow Flick",
    "5": "Wave",
    "6": "Ride On",
    "7": "Hammer Time",
    "8": "Toast",
    "9": "Nice",
    "g": "Toggle Graph",
    "h": "Hide UI",
    "t": "Chat",
}


def clamp(value, bounds):
    lo, hi = bounds
    return max(lo, min(hi, value))
