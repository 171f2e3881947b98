"""Refresh EDS preview pages for a course from the command line and print results.

Usage:
  cd backend
  python publish_course.py 7235188
  python publish_course.py 7235188 --instance 7235188-9001
  python publish_course.py 7235188 --render   # also print the overlay page
  python publish_course.py 7235188 --json     # also print the normalized course record

Reads ALM_ACCESS_TOKEN, EDS_AUTH_TOKEN and EDS_SITE_PATH from the
environment (or a .env file).
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict

from dotenv import load_dotenv

from alm_client import ALMClient
from course_data import process_course_data
from eds_publisher import EDSPublisher
from html_render import generate_course_html


def main(argv=None) -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("course_id", help="Numeric ALM course or learning program id")
    parser.add_argument("--instance", help="Only refresh this instance (EDS form, e.g. 123-456)", default=None)
    parser.add_argument("--render", action="store_true", help="Print the rendered overlay page first")
    parser.add_argument("--json", action="store_true", help="Print the normalized course record as JSON first")
    args = parser.parse_args(argv)

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    alm_client = ALMClient()
    publisher = EDSPublisher(alm_client)

    if args.render or args.json:
        document = alm_client.fetch_learning_object(args.course_id)
        if not document:
            print(f"Course {args.course_id} not found")
            return 1
        record = process_course_data(document, args.course_id, args.instance)
        if args.json:
            print(json.dumps(record.to_dict(), ensure_ascii=False, indent=2))
        if args.render:
            print(generate_course_html(record))

    if not publisher.is_configured():
        print("EDS_AUTH_TOKEN and EDS_SITE_PATH must be set to publish")
        return 2

    results = publisher.publish(args.course_id, args.instance)
    print("publish results:", json.dumps([asdict(r) for r in results], ensure_ascii=False, indent=2))
    return 0 if results and all(r.success for r in results) else 1


if __name__ == "__main__":
    sys.exit(main())
