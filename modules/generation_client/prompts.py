"""
Prompt templates for the hosted models.
"""

from typing import Optional

DEFAULT_IMAGE_STYLE = "cinematic and realistic"

SCRIPT_SYSTEM_PROMPT = """You are an expert YouTube script writer. Generate a compelling YouTube video script based on the given topic.

The script should include:
- A catchy title
- An engaging hook to grab viewer's attention in the first few seconds
- A detailed script covering the topic, one scene per paragraph, paragraphs separated by line breaks
- A clear call to action (CTA) at the end of the video

Output JSON with the following shape:
{"title": "...", "hook": "...", "script": "...", "cta": "..."}
"""


def build_script_user_prompt(topic: str) -> str:
    return f"Topic: {topic}"


def build_scene_image_prompt(paragraph: str, prompt: Optional[str] = None, style: Optional[str] = None) -> str:
    """A custom prompt wins; otherwise describe the paragraph in the requested style."""
    if prompt:
        return prompt
    return f"Generate a {style or DEFAULT_IMAGE_STYLE} image for the following scene: {paragraph}"


def build_thumbnail_prompt(request: str) -> str:
    return (
        "Generate a vibrant and eye-catching 16:9 thumbnail for a YouTube video. "
        f'The user\'s request is: "{request}". Do not include any text in the image.'
    )


def build_video_prompt(script: str) -> str:
    return (
        "Generate a video based on the following script, using the provided images as visual "
        "inspiration for the scenes. The provided audio is the voiceover for the entire video. "
        f"The video's duration should match the audio's duration. Script: {script}"
    )
