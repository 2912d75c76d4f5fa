import io
import json
import urllib.error
from pathlib import Path

import pytest
import yaml

from chronicle import crosspost as crosspost_module
from chronicle.crosspost import (
    STATE_FILE,
    CrosspostState,
    MediumClient,
    MediumSettings,
    build_payload,
    crosspost,
    select_candidates,
)
from chronicle.errors import CrosspostError
from chronicle.posts import PostProcessor


def write(root: Path, rel: str, text: str) -> None:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def create_blog(root: Path) -> None:
    write(
        root,
        "_posts/2015-03-02-jaxb.md",
        "---\ntitle: JAXB\ncrosspost_to_medium: true\n---\n"
        "See [profiles](/2016/01/05/profiles/) and ![diagram](/assets/img/d.png).\n"
        "![sketch](sketch.png)\n",
    )
    write(root, "_posts/2016-01-05-profiles.md", "---\ntitle: Profiles\n---\nNot syndicated.\n")
    write(root, "_posts/2019-07-04-s3.md", "---\ntitle: S3 & CDN\ncrosspost_to_medium: true\n---\nBody\n")
    write(root, "_drafts/idea.md", "---\ncrosspost_to_medium: true\n---\nLater\n")


class FakeClient:
    def __init__(self):
        self.sent = []
        self.me_calls = 0

    def me(self):
        self.me_calls += 1
        return "user-1"

    def create_post(self, user_id, payload):
        self.sent.append((user_id, payload))
        return f"https://medium.com/@me/{len(self.sent)}"


CONFIG = {"url": "https://blog.example.com/", "medium": {"publish_status": "public"}}


def test_settings_from_config(monkeypatch):
    monkeypatch.delenv("MEDIUM_INTEGRATION_TOKEN", raising=False)
    settings = MediumSettings.from_config({"medium": {"integration_token": "abc", "user_id": "u"}})
    assert settings.integration_token == "abc"
    assert settings.user_id == "u"
    assert settings.publish_status == "draft"
    assert settings.license == "all-rights-reserved"

    monkeypatch.setenv("MEDIUM_INTEGRATION_TOKEN", "from-env")
    assert MediumSettings.from_config({"medium": {"integration_token": "abc"}}).integration_token == "from-env"
    assert MediumSettings.from_config({}).integration_token == "from-env"


@pytest.mark.parametrize("medium", [{"publish_status": "secret"}, ["not", "a", "mapping"]])
def test_settings_reject_bad_values(medium):
    with pytest.raises(CrosspostError):
        MediumSettings.from_config({"medium": medium})


def test_select_candidates(tmp_path):
    create_blog(tmp_path)
    posts = PostProcessor(tmp_path).load(include_drafts=True)
    state = CrosspostState(tmp_path / STATE_FILE)
    assert [p.slug for p in select_candidates(posts, state)] == ["jaxb", "s3"]

    jaxb = [p for p in posts if p.slug == "jaxb"][0]
    state.record(jaxb, "https://medium.com/x")
    assert [p.slug for p in select_candidates(posts, state)] == ["s3"]


def test_state_round_trips(tmp_path):
    create_blog(tmp_path)
    posts = PostProcessor(tmp_path).load()
    s3 = posts[0]
    state_path = tmp_path / STATE_FILE
    CrosspostState(state_path).record(s3, "https://medium.com/s3")

    data = yaml.safe_load(state_path.read_text(encoding="utf-8"))
    assert data["_posts/2019-07-04-s3.md"]["url"] == "https://medium.com/s3"
    assert "published_at" in data["_posts/2019-07-04-s3.md"]

    reloaded = CrosspostState(state_path)
    assert s3 in reloaded
    assert reloaded.url_for(s3) == "https://medium.com/s3"
    assert reloaded.url_for(posts[1]) is None


def test_state_rejects_garbage(tmp_path):
    write(tmp_path, STATE_FILE, "- just\n- a list\n")
    with pytest.raises(CrosspostError):
        CrosspostState(tmp_path / STATE_FILE)

    write(tmp_path, STATE_FILE, "a: [oops\n")
    with pytest.raises(CrosspostError, match="invalid YAML"):
        CrosspostState(tmp_path / STATE_FILE)

    write(tmp_path, STATE_FILE, "_posts/2019-07-04-s3.md: https://medium.com/s3\n")
    with pytest.raises(CrosspostError, match="must be a mapping"):
        CrosspostState(tmp_path / STATE_FILE)


def test_build_payload(tmp_path):
    create_blog(tmp_path)
    posts = PostProcessor(tmp_path).load()
    jaxb = [p for p in posts if p.slug == "jaxb"][0]
    payload = build_payload(jaxb, "https://blog.example.com", MediumSettings(publish_status="public"))

    assert payload["title"] == "JAXB"
    assert payload["contentFormat"] == "html"
    assert payload["canonicalUrl"] == "https://blog.example.com/2015/03/02/jaxb/"
    assert payload["publishStatus"] == "public"
    assert payload["content"].startswith("<h1>JAXB</h1>\n")
    assert 'href="https://blog.example.com/2016/01/05/profiles/"' in payload["content"]
    assert 'src="https://blog.example.com/assets/img/d.png"' in payload["content"]
    assert 'src="https://blog.example.com/2015/03/02/jaxb/sketch.png"' in payload["content"]
    assert "originally published at" in payload["content"]

    s3 = posts[0]
    assert "<h1>S3 &amp; CDN</h1>" in build_payload(s3, "https://blog.example.com", MediumSettings())["content"]


def test_crosspost_sends_each_post_once(tmp_path):
    create_blog(tmp_path)
    posts = PostProcessor(tmp_path).load()
    client = FakeClient()

    results = crosspost(tmp_path, posts, CONFIG, client=client)
    assert [(r.post.slug, r.url) for r in results] == [
        ("jaxb", "https://medium.com/@me/1"),
        ("s3", "https://medium.com/@me/2"),
    ]
    assert client.me_calls == 1
    assert [user for user, _ in client.sent] == ["user-1", "user-1"]
    assert client.sent[0][1]["canonicalUrl"] == "https://blog.example.com/2015/03/02/jaxb/"
    assert client.sent[0][1]["publishStatus"] == "public"

    again = crosspost(tmp_path, posts, CONFIG, client=client)
    assert again == []
    assert len(client.sent) == 2


def test_crosspost_uses_configured_user(tmp_path):
    create_blog(tmp_path)
    posts = PostProcessor(tmp_path).load()
    client = FakeClient()
    crosspost(tmp_path, posts, {"url": "https://blog.example.com", "medium": {"user_id": "me-42"}}, client=client)
    assert client.me_calls == 0
    assert {user for user, _ in client.sent} == {"me-42"}


def test_dry_run_sends_nothing(tmp_path):
    create_blog(tmp_path)
    posts = PostProcessor(tmp_path).load()
    client = FakeClient()
    results = crosspost(tmp_path, posts, CONFIG, dry_run=True, client=client)
    assert [(r.post.slug, r.url) for r in results] == [("jaxb", None), ("s3", None)]
    assert client.sent == []
    assert not (tmp_path / STATE_FILE).exists()


def test_crosspost_requires_site_url(tmp_path):
    create_blog(tmp_path)
    posts = PostProcessor(tmp_path).load()
    with pytest.raises(CrosspostError, match="url"):
        crosspost(tmp_path, posts, {"url": ""}, client=FakeClient())


def test_client_requires_token():
    with pytest.raises(CrosspostError, match="MEDIUM_INTEGRATION_TOKEN"):
        MediumClient("")


class FakeResponse:
    def __init__(self, body):
        self._body = json.dumps(body).encode("utf-8")

    def read(self):
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def test_client_requests(monkeypatch):
    calls = []

    def fake_urlopen(req, timeout=None):
        calls.append(req)
        if req.full_url.endswith("/me"):
            return FakeResponse({"data": {"id": "user-9"}})
        return FakeResponse({"data": {"url": "https://medium.com/p/1"}})

    monkeypatch.setattr(crosspost_module.urllib.request, "urlopen", fake_urlopen)
    client = MediumClient("token-1", base_url="https://api.test/v1/")
    assert client.me() == "user-9"
    assert client.create_post("user-9", {"title": "T"}) == "https://medium.com/p/1"

    me_req, post_req = calls
    assert me_req.get_method() == "GET"
    assert me_req.get_header("Authorization") == "Bearer token-1"
    assert post_req.full_url == "https://api.test/v1/users/user-9/posts"
    assert post_req.get_method() == "POST"
    assert json.loads(post_req.data) == {"title": "T"}


def test_client_wraps_http_errors(monkeypatch):
    def fake_urlopen(req, timeout=None):
        raise urllib.error.HTTPError(
            req.full_url, 401, "Unauthorized", {}, io.BytesIO(b'{"errors": "bad token"}')
        )

    monkeypatch.setattr(crosspost_module.urllib.request, "urlopen", fake_urlopen)
    with pytest.raises(CrosspostError, match="401"):
        MediumClient("token-1").me()

    def unreachable(req, timeout=None):
        raise urllib.error.URLError("no route")

    monkeypatch.setattr(crosspost_module.urllib.request, "urlopen", unreachable)
    with pytest.raises(CrosspostError, match="unreachable"):
        MediumClient("token-1").me()
