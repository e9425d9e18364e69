import argparse
import logging
import mimetypes
import os

from backend.app.config import settings
from backend.app.logging_config import setup_logging
from pipeline.io_types import ImageInput, ServiceOptions
from pipeline.pipeline import TryOnPipeline


def _load(path: str) -> ImageInput:
    with open(path, "rb") as f:
        data = f.read()
    return ImageInput(data=data, mime_type=mimetypes.guess_type(path)[0] or "image/png")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Run a NanoFit try-on in-process")
    parser.add_argument("--person", required=True, help="Path to the person photo")
    parser.add_argument("--item", required=True, help="Path to the clothing/accessory photo")
    parser.add_argument("--out", required=True, help="Output image path")
    parser.add_argument("--mode", choices=["pro", "flash"], default=settings.get_str("default_mode", "pro"))
    parser.add_argument("--type", dest="item_type", choices=["clothing", "accessory"], default=None,
                        help="Skip analysis and force the item type")
    parser.add_argument("--api-key", default=None, help="Gemini API key (defaults to GEMINI_API_KEY)")
    parser.add_argument("--backend", choices=["gemini", "local"], default=None, help="Override the configured backend")
    parser.add_argument("--refine", action="append", default=[], help="Refinement instruction; repeatable")
    args = parser.parse_args(argv)

    setup_logging()
    log = logging.getLogger("nanofit.demo")

    overrides = {"backend": args.backend} if args.backend else None
    pipe = TryOnPipeline.from_settings(settings, overrides=overrides)
    options = ServiceOptions(
        model_mode=args.mode,
        custom_api_key=args.api_key,
        on_status_update=lambda s: log.info(s.upper()),
    )

    person = _load(args.person)
    item = _load(args.item)
    item_type = args.item_type or pipe.analyze_item(item, options)
    log.info("Item type: %s", item_type)

    result = pipe.generate_try_on(person, item, item_type, options)
    if not result.review_passed:
        log.warning("Review flagged the result; saving it anyway")
    image = result.image
    for instruction in args.refine:
        image = pipe.refine_image(image, instruction, options)

    os.makedirs(os.path.dirname(args.out) or ".", exist_ok=True)
    with open(args.out, "wb") as f:
        f.write(ImageInput.from_data_url(image).data)
    print(f"Saved: {args.out}")


if __name__ == "__main__":
    main()
