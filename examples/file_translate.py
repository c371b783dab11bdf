"""
Re-encode text files, releasing every file handle and partial output on any exit path.

Each source file gets its own scope (input handle, partial output file,
output handle). The manifest lives in the outer scope and survives a
skipped file; a strict failure unwinds everything.

Run: python examples/file_translate.py notes.txt more.txt --outdir out --from latin-1 --to utf-8
"""
import os
import sys

import click

from deferstack import (
    Failure,
    Scope,
    activation,
    block,
    closing,
)


def _discard(path: str) -> None:
    if os.path.exists(path):
        os.remove(path)
        print(f"[translate] removed partial {path}", file=sys.stderr)


def copy_lines(fin, fout, src: str) -> int:
    n = 0
    try:
        for line in fin:
            fout.write(line); n += 1
    except UnicodeError as ex:
        raise Failure(f"{src}: {ex}") from ex
    return n


@activation(capacity=4)
def translate_all(stack, sources, outdir: str, src_enc: str, dst_enc: str, strict: bool = False) -> int:
    status = 0
    with Scope(stack):
        manifest = closing(stack, open(os.path.join(outdir, "MANIFEST"), "w", encoding="utf-8"))
        status = 2
        with block():
            for src in sources:
                with Scope(stack) as s:
                    fin = closing(stack, open(src, encoding=src_enc))
                    dst = os.path.join(outdir, os.path.basename(src))
                    tmp = dst + ".part"
                    s.push(lambda tmp=tmp: _discard(tmp), f"discard {tmp}")
                    fout = closing(stack, open(tmp, "w", encoding=dst_enc))
                    try:
                        copy_lines(fin, fout, src)
                    except Failure as fe:
                        print(f"[translate] {fe.error}", file=sys.stderr)
                        if strict:
                            s.return_(1)
                        s.exit_block()
                    fout.close()
                    os.replace(tmp, dst)
                    manifest.write(dst + "\n")
            status = 0
    return status


@click.command()
@click.argument("sources", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--outdir", required=True, type=click.Path(file_okay=False))
@click.option("--from", "src_enc", default="latin-1", show_default=True)
@click.option("--to", "dst_enc", default="utf-8", show_default=True)
@click.option("--strict", is_flag=True, help="Undo everything on the first bad file.")
def main(sources, outdir, src_enc, dst_enc, strict):
    os.makedirs(outdir, exist_ok=True)
    sys.exit(translate_all(sources, outdir, src_enc, dst_enc, strict))


if __name__ == "__main__":
    main()
