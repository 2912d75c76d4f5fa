from pathlib import Path

import pytest

from chronicle.build import DEFAULT_CONFIG, build_site, load_config, output_path_for
from chronicle.errors import BuildError, ConfigError, FrontMatterError


def write(root: Path, rel: str, text: str) -> None:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def create_blog(root: Path) -> None:
    write(
        root,
        "chronicle.yaml",
        "title: Test Blog\nurl: https://blog.example.com\npaginate: 1\n",
    )
    write(root, "_layouts/default.html", "<html><body>{{ content }}</body></html>")
    write(
        root,
        "_layouts/post.html",
        "<html><body><article><h1>{{ page.title }}</h1>{{ content }}"
        "{% if page.comments %}<div id=\"comments\"></div>{% endif %}"
        "{% if page.previous %}<a href=\"{{ page.previous.url }}\">older</a>{% endif %}"
        "</article></body></html>",
    )
    write(
        root,
        "_layouts/home.html",
        "<html><body>{% for post in paginator.posts %}"
        "<a href=\"{{ post.url }}\">{{ post.title }}</a>{% endfor %}"
        "{% if paginator.next_page_url %}<a href=\"{{ paginator.next_page_url }}\">next</a>{% endif %}"
        "</body></html>",
    )
    write(
        root,
        "_layouts/archive.html",
        "<html><body>{% for group in years %}<h2>{{ group.year }}</h2>{% endfor %}</body></html>",
    )
    write(
        root,
        "_posts/2015-03-02-jaxb-episodes.md",
        "---\ntitle: JAXB Episodes\ncomments: true\n---\nEpisodes **rock**.\n",
    )
    write(root, "_posts/2019-07-04-s3-hosting.md", "---\ntitle: S3 Hosting\n---\nStatic sites.\n")
    write(root, "_drafts/next-idea.md", "---\ntitle: Next Idea\n---\nSoon.\n")
    write(root, "assets/js/app.js", "var answer = 42 ;\n")


def test_load_config(tmp_path):
    assert load_config(tmp_path) == DEFAULT_CONFIG
    write(tmp_path, "chronicle.yaml", "title: Mine\npaginate: 5\n")
    config = load_config(tmp_path)
    assert config["title"] == "Mine"
    assert config["paginate"] == 5
    assert config["permalink"] == "/:year/:month/:day/:title/"

    write(tmp_path, "chronicle.yaml", "")
    assert load_config(tmp_path) == DEFAULT_CONFIG


@pytest.mark.parametrize("text", ["- a\n- b\n", "title: [oops\n"])
def test_load_config_rejects_bad_files(tmp_path, text):
    write(tmp_path, "chronicle.yaml", text)
    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_output_path_for():
    assert output_path_for("/") == Path("index.html")
    assert output_path_for("/2015/03/02/jaxb/") == Path("2015/03/02/jaxb/index.html")
    assert output_path_for("/2015/jaxb.html") == Path("2015/jaxb.html")
    assert output_path_for("/page2/") == Path("page2/index.html")


def test_build_site(tmp_path):
    create_blog(tmp_path)
    result = build_site(tmp_path)
    out = tmp_path / "_site"
    assert result.output_dir == out
    assert [p.slug for p in result.posts] == ["s3-hosting", "jaxb-episodes"]

    for rel in [
        "2015/03/02/jaxb-episodes/index.html",
        "2019/07/04/s3-hosting/index.html",
        "index.html",
        "page2/index.html",
        "archive/index.html",
        "feed.xml",
        "sitemap.xml",
    ]:
        assert rel in result.written
        assert (out / rel).exists()

    jaxb = (out / "2015/03/02/jaxb-episodes/index.html").read_text(encoding="utf-8")
    assert "<h1>JAXB Episodes</h1>" in jaxb
    assert "<strong>rock</strong>" in jaxb
    assert '<div id="comments"></div>' in jaxb

    s3 = (out / "2019/07/04/s3-hosting/index.html").read_text(encoding="utf-8")
    assert '<a href="/2015/03/02/jaxb-episodes/">older</a>' in s3
    assert '<div id="comments">' not in s3

    index = (out / "index.html").read_text(encoding="utf-8")
    assert "S3 Hosting" in index
    assert "JAXB Episodes" not in index
    assert '<a href="/page2/">next</a>' in index

    archive = (out / "archive/index.html").read_text(encoding="utf-8")
    assert "<h2>2019</h2><h2>2015</h2>" in archive

    assert "Next Idea" not in (out / "feed.xml").read_text(encoding="utf-8")
    assert (out / "assets/js/app.js").read_text(encoding="utf-8") != "var answer = 42 ;\n"
    assert not any("next-idea" in p.as_posix() for p in out.rglob("*"))


def test_build_with_drafts(tmp_path):
    create_blog(tmp_path)
    result = build_site(tmp_path, include_drafts=True)
    assert len(result.posts) == 3
    draft = [p for p in result.posts if p.draft][0]
    assert (tmp_path / "_site" / draft.url.strip("/") / "index.html").exists()
    feed = (tmp_path / "_site" / "feed.xml").read_text(encoding="utf-8")
    assert "Next Idea" not in feed


def test_build_cleans_output(tmp_path):
    create_blog(tmp_path)
    write(tmp_path, "_site/stale.html", "old")
    build_site(tmp_path)
    assert not (tmp_path / "_site" / "stale.html").exists()


def test_build_with_root_url(tmp_path):
    create_blog(tmp_path)
    output = tmp_path / "preview"
    build_site(tmp_path, root_url="http://localhost:4000", output_dir_override=output)
    index = (output / "index.html").read_text(encoding="utf-8")
    assert 'href="http://localhost:4000/2019/07/04/s3-hosting/"' in index
    assert not (tmp_path / "_site").exists()


def test_build_without_home_layout(tmp_path, caplog):
    create_blog(tmp_path)
    (tmp_path / "_layouts" / "home.html").unlink()
    result = build_site(tmp_path)
    assert "index.html" not in result.written
    assert "No 'home' layout" in caplog.text


def test_build_without_site_url_skips_feeds(tmp_path):
    create_blog(tmp_path)
    write(tmp_path, "chronicle.yaml", "title: Test Blog\n")
    result = build_site(tmp_path)
    assert "feed.xml" not in result.written
    assert not (tmp_path / "_site" / "feed.xml").exists()


def test_missing_layout_is_a_build_error(tmp_path):
    create_blog(tmp_path)
    (tmp_path / "_layouts" / "default.html").unlink()
    write(tmp_path, "_posts/2020-01-01-odd.md", "---\nlayout: nope\n---\nHi\n")
    with pytest.raises(BuildError) as excinfo:
        build_site(tmp_path)
    assert excinfo.value.message == "layout 'nope' not found (and no 'default' layout)"
    assert excinfo.value.source_path.name == "2020-01-01-odd.md"


def test_template_errors_are_build_errors(tmp_path):
    create_blog(tmp_path)
    write(tmp_path, "_layouts/post.html", "{% if %}")
    with pytest.raises(BuildError) as excinfo:
        build_site(tmp_path)
    assert "template syntax error" in excinfo.value.message

    write(tmp_path, "_layouts/post.html", '{% include "missing.html" %}')
    with pytest.raises(BuildError) as excinfo:
        build_site(tmp_path)
    assert excinfo.value.message == "template 'missing.html' not found"


def test_bad_post_stops_the_build(tmp_path):
    create_blog(tmp_path)
    write(tmp_path, "_posts/2020-01-01-broken.md", "---\ncomments: maybe\n---\n")
    with pytest.raises(FrontMatterError):
        build_site(tmp_path)


def test_non_utf8_post_names_the_file(tmp_path):
    create_blog(tmp_path)
    (tmp_path / "_posts" / "2015-01-02-bad.md").write_bytes(b"---\ntitle: Bad\n---\n\xff\xfe\n")
    with pytest.raises(FrontMatterError) as excinfo:
        build_site(tmp_path)
    assert excinfo.value.message == "file is not valid UTF-8"
    assert excinfo.value.source_path.name == "2015-01-02-bad.md"


def test_path_root_url_is_applied_once(tmp_path):
    create_blog(tmp_path)
    write(
        tmp_path,
        "_layouts/post.html",
        "<html><body>{{ content }}<a href=\"{{ url_for('/archive/') }}\">archive</a></body></html>",
    )
    build_site(tmp_path, root_url="/blog")
    post = (tmp_path / "_site" / "2019" / "07" / "04" / "s3-hosting" / "index.html").read_text(encoding="utf-8")
    assert 'href="/blog/archive/"' in post
    assert "/blog/blog/" not in post
    index = (tmp_path / "_site" / "index.html").read_text(encoding="utf-8")
    assert 'href="/blog/2019/07/04/s3-hosting/"' in index


def test_page_relative_links_are_kept(tmp_path):
    create_blog(tmp_path)
    write(tmp_path, "_posts/2020-02-02-diagram.md", "---\ntitle: Diagram\n---\n![d](diagram.png)\n")
    build_site(tmp_path, root_url="https://ex.com")
    post = (tmp_path / "_site" / "2020" / "02" / "02" / "diagram" / "index.html").read_text(encoding="utf-8")
    assert 'src="diagram.png"' in post
    assert "https://ex.com/diagram.png" not in post
