# debug_env.py
#!/usr/bin/env python3
"""Debug API key and config loading."""
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from change_assistant.config import API_KEY_ENV, AssistantSettings, load_config, load_env, resolve_api_key

print("=" * 60)
print("Environment Debug")
print("=" * 60)

print(f"\n1. Current directory: {Path.cwd()}")

print("\n2. Loading .env file...")
env_path = load_env()
print(f"   Loaded: {env_path or 'no .env found'}")

print("\n3. Environment variables:")
print(f"   {API_KEY_ENV} in os.environ: {API_KEY_ENV in os.environ}")
api_key = resolve_api_key(load_config())
print(f"   Resolved key length: {len(api_key) if api_key else 0}")

print("\n4. Config file:")
config_path = Path("config.yaml")
print(f"   config.yaml exists: {config_path.exists()}")
try:
    settings = AssistantSettings.from_file(str(config_path))
except ValueError as e:
    print(f"   ❌ Invalid: {e}")
else:
    print(f"   Thresholds: {settings.low_confidence}/{settings.medium_confidence}/{settings.high_confidence}")
    print(f"   Max retries: {settings.max_retries}, fallback: {settings.fallback_enabled}")

print("\n" + "=" * 60)
