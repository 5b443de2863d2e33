#!/usr/bin/env python3
"""
Pipeline Demo - assess, preview and (with an API key) run a visual change.
"""

import asyncio
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from change_assistant.api.client import ConfigurationError, HttpGenerationBackend
from change_assistant.config import load_config
from change_assistant.core.bundle_loader import BundleLoader
from change_assistant.core.change_models import create_change_request
from change_assistant.core.reasoning_engine import create_orchestrator

EXAMPLES_DIR = Path(__file__).parent


def demo_assessment():
    """Compare a precise request with a vague one on the same component."""
    print("🚀 Visual Change Assistant - Pipeline Demo")
    print("=" * 50)

    bundle = BundleLoader(base_dir=EXAMPLES_DIR.parent).load_bundle("examples/button_bundle.yaml")
    orchestrator = create_orchestrator()

    vague = create_change_request(selector="button", edits=[], tag_name="button")

    for label, request in (("Precise request", bundle.request), ("Vague request", vague)):
        result = orchestrator.dry_run(request, bundle.impact_analysis, bundle.target_component, bundle.repo_model)
        print(f"\n📋 {label}: {request.summary()}")
        print(f"   {result.assessment.describe()}")
        for change in result.preview.expected_changes:
            print(f"   • expected: {change}")
        for risk in result.preview.risks:
            print(f"   ⚠️  {risk}")
        for recommendation in result.preview.recommendations:
            print(f"   💡 {recommendation}")

    return bundle


async def demo_run(bundle):
    """Run the full pipeline against the configured backend."""
    print("\n" + "=" * 50)
    print("🤖 Full Run")
    print("=" * 50)

    try:
        backend = HttpGenerationBackend(config=load_config())
    except ConfigurationError as e:
        print(f"⏭️  Skipping: {e}")
        return

    async with backend:
        orchestrator = create_orchestrator(backend=backend)
        result = await orchestrator.run(bundle.request, bundle.impact_analysis,
                                        bundle.target_component, bundle.repo_model)

    print(result.summary)
    print("\n✅ Change ready to apply" if result.success else "\n❌ Change not applied")


if __name__ == "__main__":
    loaded = demo_assessment()
    asyncio.run(demo_run(loaded))
    print("\n🎉 Demo completed!")
