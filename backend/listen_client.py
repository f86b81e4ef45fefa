#!/usr/bin/env python3
"""
Listener client for the microphone stream backend.

Connects to GET /stream, decodes the base64 PCM events and plays them on the
default output device. Optionally writes what it received to a WAV file.
"""
import argparse
import base64
import json
import sys
import wave
import numpy as np
import requests
import sounddevice as sd

from micstream.audio.ingestion import bytes_to_samples
from micstream.audio.streaming import parse_events

# Server configuration
SERVER_URL = "http://localhost:3030"


def fetch_format(server_url: str) -> dict:
    """Ask the server which sample rate and channel count it streams."""
    response = requests.get(f"{server_url}/stream/info", timeout=5)
    response.raise_for_status()
    return response.json()


def open_wav(path: str, info: dict):
    """Open a 16-bit WAV file matching the stream format."""
    wav_file = wave.open(path, "wb")
    wav_file.setnchannels(info["channels"])
    wav_file.setsampwidth(2)  # float32 is converted to 16-bit on write
    wav_file.setframerate(info["sample_rate"])
    return wav_file


def listen(server_url: str, play: bool = True, wav_path: str = None) -> None:
    """Receive the stream until interrupted."""
    info = fetch_format(server_url)
    channels = info["channels"]
    sample_rate = info["sample_rate"]

    print("=" * 70)
    print("Microphone Stream - Listener")
    print("=" * 70)
    print(f"Device: {info.get('device')}")
    print(f"Sample Rate: {sample_rate} Hz")
    print(f"Channels: {channels}")
    print(f"Server: {server_url}/stream")
    print("=" * 70)
    print("Press Ctrl+C to stop\n")

    output_stream = None
    if play:
        output_stream = sd.OutputStream(samplerate=sample_rate, channels=channels, dtype=np.float32)
        output_stream.start()

    wav_file = open_wav(wav_path, info) if wav_path else None
    event_count = 0
    byte_count = 0
    pending = b""

    try:
        with requests.get(f"{server_url}/stream", stream=True, timeout=(5, None)) as response:
            response.raise_for_status()
            lines = response.iter_lines(decode_unicode=True)
            for event_name, data in parse_events(lines):
                if event_name == "error":
                    error = json.loads(data)
                    print(f"\nServer reported capture error: {error['error']}: {error['message']}", file=sys.stderr)
                    continue
                if event_name != "audio":
                    continue

                chunk = pending + base64.b64decode(data)
                samples = bytes_to_samples(chunk, channels)
                consumed = samples.size * 4
                pending = chunk[consumed:]

                event_count += 1
                byte_count += consumed
                peak = float(np.abs(samples).max()) if samples.size else 0.0
                print(f"\rEvents: {event_count} | Bytes: {byte_count} | Peak: {peak:5.3f}", end="", flush=True)

                if output_stream is not None and samples.size:
                    output_stream.write(samples)
                if wav_file is not None and samples.size:
                    wav_file.writeframes((np.clip(samples, -1.0, 1.0) * 32767).astype("<i2").tobytes())

    except KeyboardInterrupt:
        print("\n\nStopped by user")
    except requests.RequestException as e:
        print(f"\nConnection error: {e}", file=sys.stderr)
    finally:
        if output_stream is not None:
            output_stream.stop()
            output_stream.close()
        if wav_file is not None:
            wav_file.close()
            print(f"\nSaved received audio to {wav_path}")
        print(f"\nSummary: Received {event_count} events, {byte_count} bytes")


def main():
    parser = argparse.ArgumentParser(description="Listen to the live microphone stream")
    parser.add_argument("--server", default=SERVER_URL, help="Base URL of the backend")
    parser.add_argument("--no-play", action="store_true", help="Do not play audio locally")
    parser.add_argument("--save", metavar="WAV", help="Write received audio to a WAV file")
    args = parser.parse_args()

    listen(args.server, play=not args.no_play, wav_path=args.save)


if __name__ == "__main__":
    main()
